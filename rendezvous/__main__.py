"""Run the rendezvous API with uvicorn: ``python -m rendezvous``."""

import os

import uvicorn


def main() -> None:
    host = os.getenv("SERVER_HOST") or "0.0.0.0"
    port = int(os.getenv("SERVER_PORT") or "8080")
    # Claim-once and rate limits hold per process, so run exactly one worker.
    uvicorn.run("rendezvous.main:app", host=host, port=port, workers=1, log_config=None)


if __name__ == "__main__":
    main()
