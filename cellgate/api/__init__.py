"""HTTP API layer for the cell gateway.

Key components:
- **main**: Application factory and lifespan owning the ``CellContext``
- **routes**: The cell invocation, health and metadata endpoints
- **middleware**: Request context, request logging and error handling
- **schemas**: Standardized error response format
- **utils**: orjson response class

Route handlers stay thin: they resolve the destination from the path and
hand the payload to the router; everything else lives in the cells.
"""
