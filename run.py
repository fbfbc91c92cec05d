#!/usr/bin/env python3
"""
Entry point for Vault Media Service
"""
from vault_media.main import run_server

if __name__ == "__main__":
    run_server()
