"""
Main entry point for the addon uploads service.
"""

import uvicorn

if __name__ == "__main__":
    uvicorn.run("addon_uploads.app.api:app", host="0.0.0.0", port=8000, reload=True)
