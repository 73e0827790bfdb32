"""Standalone relay server: FastAPI app factory and uvicorn entry point.

Usage::

    poetry run chat-relay

    # Custom port / HTTPS with a self-signed certificate:
    PORT=9000 poetry run chat-relay
    HTTPS=1 poetry run chat-relay

Environment variables:
    PORT                - Server port (default: 3000, 8443 with HTTPS)
    HTTPS               - Enable HTTPS with self-signed cert (default: 0)
    SSL_CERTFILE        - Path to TLS certificate (auto-generated if missing)
    SSL_KEYFILE         - Path to TLS private key (auto-generated if missing)
    JWT_SECRET          - Session token signing secret
    DATA_DIR            - Directory for messages.jsonl and users.json (default: ./data)
    MESSAGE_LOG         - file | memory | mongodb (default: file)
    DELIVERY_DELAY_MS   - Delivery confirmation delay (default: 700)
    HEARTBEAT_INTERVAL  - Seconds between liveness sweeps (default: 30)
    PUBLIC_DIR          - Optional static directory served under /

See ``RelayConfig.from_env`` for the complete list. Loads .env from the
current working directory or any parent directory.
"""

import ipaddress
import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from chat_relay.config import RelayConfig

logger = logging.getLogger(__name__)


# ── Self-signed certificate generation ───────────────────────────

def _ensure_self_signed_cert(cert_path: Path, key_path: Path) -> None:
    """Generate a self-signed TLS certificate if files don't exist."""
    if cert_path.exists() and key_path.exists():
        return

    from cryptography import x509
    from cryptography.x509.oid import NameOID
    from cryptography.hazmat.primitives import hashes, serialization
    from cryptography.hazmat.primitives.asymmetric import rsa
    import datetime

    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)

    subject = issuer = x509.Name([
        x509.NameAttribute(NameOID.COMMON_NAME, "localhost"),
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, "chat-relay dev"),
    ])

    now = datetime.datetime.now(datetime.timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now)
        .not_valid_after(now + datetime.timedelta(days=365))
        .add_extension(
            x509.SubjectAlternativeName([
                x509.DNSName("localhost"),
                x509.IPAddress(ipaddress.ip_address("127.0.0.1")),
            ]),
            critical=False,
        )
        .sign(key, hashes.SHA256())
    )

    key_path.parent.mkdir(parents=True, exist_ok=True)
    key_path.write_bytes(key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.TraditionalOpenSSL,
        serialization.NoEncryption(),
    ))
    cert_path.write_bytes(cert.public_bytes(serialization.Encoding.PEM))
    logger.info(f"Generated self-signed certificate: {cert_path}")


# ── FastAPI app factory ──────────────────────────────────────────

def create_app(config: Optional[RelayConfig] = None):
    """Create the FastAPI application.

    Without an explicit config, .env is loaded and the environment is read.
    Also called by uvicorn via the factory=True flag.
    """
    if config is None:
        from dotenv import load_dotenv, find_dotenv
        load_dotenv(find_dotenv(usecwd=True))
        config = RelayConfig.from_env()

    from fastapi import FastAPI
    from fastapi.middleware.cors import CORSMiddleware
    from fastapi.staticfiles import StaticFiles

    from chat_relay.hub import RelayHub
    from chat_relay.server import build_http_router, install_exception_handlers

    hub = RelayHub.from_config(config)

    @asynccontextmanager
    async def lifespan(_a):
        await hub.start()
        yield
        await hub.stop()

    _app = FastAPI(title="chat-relay", docs_url=None, redoc_url=None, lifespan=lifespan)
    _app.state.hub = hub
    _app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])
    install_exception_handlers(_app)
    _app.include_router(build_http_router(hub))

    if config.public_dir is not None and config.public_dir.is_dir():
        _app.mount("/", StaticFiles(directory=str(config.public_dir), html=True), name="public")
        logger.info(f"Serving static files from {config.public_dir}")

    return _app


# ── Entry point ──────────────────────────────────────────────────

def main():
    """Load .env, configure HTTPS, and start the server."""
    from dotenv import load_dotenv, find_dotenv
    load_dotenv(find_dotenv(usecwd=True))

    import uvicorn

    use_https = os.environ.get("HTTPS", "0") == "1"
    default_port = 8443 if use_https else 3000
    port = int(os.environ.get("PORT", str(default_port)))

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
        datefmt="%H:%M:%S",
    )

    ssl_kwargs = {}
    if use_https:
        cert_dir = Path.home() / ".chat-relay" / "certs"
        cert_path = Path(os.environ.get("SSL_CERTFILE", str(cert_dir / "localhost.pem")))
        key_path = Path(os.environ.get("SSL_KEYFILE", str(cert_dir / "localhost-key.pem")))
        _ensure_self_signed_cert(cert_path, key_path)
        ssl_kwargs = {"ssl_certfile": str(cert_path), "ssl_keyfile": str(key_path)}
        proto = "https"
    else:
        proto = "http"

    print(f"\n  chat-relay -> {proto}://localhost:{port}\n")
    uvicorn.run(
        "chat_relay.standalone:create_app",
        factory=True,
        host="0.0.0.0",
        port=port,
        **ssl_kwargs,
    )


if __name__ == "__main__":
    main()
