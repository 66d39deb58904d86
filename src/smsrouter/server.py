"""Server entry point for the SMS command router."""

import os

import uvicorn


def main():
    """Run the FastAPI server."""
    uvicorn.run(
        "smsrouter.api:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8080")),
        log_level="info",
    )


if __name__ == "__main__":
    main()
