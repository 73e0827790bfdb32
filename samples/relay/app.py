#!/usr/bin/env python3
"""Standalone relay app - run chat-relay as an HTTP server.

    cd samples/relay
    poetry run python app.py

Starts on http://localhost:3000 and stores data in ./data.

Environment variables:
    PORT            - Server port (default: 3000)
    HTTPS           - Set to 1 for HTTPS with a self-signed certificate
    JWT_SECRET      - Session token signing secret
    DATA_DIR        - Data directory (default: ./data)
    PUBLIC_DIR      - Static frontend directory served under / (optional)
"""
from chat_relay.standalone import main

if __name__ == "__main__":
    main()
