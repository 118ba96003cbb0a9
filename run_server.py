import os
import pathlib

import uvicorn
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def ssl_options(base_dir: pathlib.Path) -> dict[str, str]:
    """Serve over TLS when a certificate pair sits in ``ssl/``."""
    ssl_keyfile = base_dir / "ssl" / "key.pem"
    ssl_certfile = base_dir / "ssl" / "cert.pem"
    if ssl_keyfile.exists() and ssl_certfile.exists():
        return {"ssl_keyfile": str(ssl_keyfile), "ssl_certfile": str(ssl_certfile)}
    return {}


def main():
    port = int(os.getenv("API_PORT", "8001"))
    host = os.getenv("API_HOST", "127.0.0.1")  # Default to localhost
    reload = os.getenv("APP_ENV", "development") != "production"

    uvicorn.run(
        "app.main:app",
        host=host,
        port=port,
        reload=reload,
        **ssl_options(pathlib.Path(__file__).parent),
    )


if __name__ == "__main__":
    main()
