import logging
import os

import uvicorn

if __name__ == "__main__":
    logging.basicConfig(
        level=os.environ.get("SLIM_PYRAMID_LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    print("Starting Slim Pyramid level serving API...")
    print("Docs available at: http://localhost:8000/docs")

    uvicorn.run(
        "slim_pyramid.api.server:app",
        host="0.0.0.0",
        port=int(os.environ.get("SLIM_PYRAMID_PORT", "8000")),
        reload=True
    )
