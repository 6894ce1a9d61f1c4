"""
entrylog_node/app.py
-----------------
Thin entrypoint for running the EntryLog FastAPI app via:

    uvicorn entrylog_node.app:app

The serving organization, paths and Fabric settings come from
entrylog_config.yaml in the working directory (or $ENTRYLOG_CONFIG) and the
ENTRYLOG_* environment variables. Route wiring lives in entrylog_node.entrylog_api.
"""

from .entrylog_api import create_app

app = create_app()


if __name__ == "__main__":
    # Convenience for: python -m entrylog_node.app
    import uvicorn

    uvicorn.run(app, host="127.0.0.1", port=3000)
