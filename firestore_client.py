"""
firestore_client.py — Async Firestore client factory for the MCP server
- Provides: create_firestore_client(), probe_connection()
- Credential priority: FIREBASE_SERVICE_ACCOUNT_JSON (path) > FIREBASE_CONFIG_JSON (inline JSON) > ADC
- FIRESTORE_EMULATOR_HOST bypasses firebase_admin and talks to the emulator anonymously
"""
from __future__ import annotations

import os
import json
import logging
from typing import Mapping, Optional

import firebase_admin
from firebase_admin import credentials, firestore_async
from google.cloud import firestore

__all__ = ["create_firestore_client", "probe_connection", "PROBE_COLLECTION"]

logger = logging.getLogger("firestore-client")

PROBE_COLLECTION = "_test_connection"
DEFAULT_DATABASE = "(default)"


def _credential(environ: Mapping[str, str]) -> Optional[credentials.Base]:
    """Pick the best explicit credential; None means Application Default Credentials."""
    sa_path = environ.get("FIREBASE_SERVICE_ACCOUNT_JSON")
    sa_json = environ.get("FIREBASE_CONFIG_JSON")

    if sa_path and os.path.isfile(sa_path):
        logger.info("Using service account file: %s", sa_path)
        return credentials.Certificate(sa_path)

    if sa_json:
        try:
            cred = credentials.Certificate(json.loads(sa_json))
            logger.info("Using service account JSON from env")
            return cred
        except (ValueError, TypeError):
            logger.exception("Invalid FIREBASE_CONFIG_JSON; falling back to ADC")

    logger.info("Using ADC (Application Default Credentials)")
    return None


def _firebase_app(project_id: str, environ: Mapping[str, str]) -> firebase_admin.App:
    """Return the firebase_admin app for this project, initializing it once."""
    name = f"firestore-mcp-{project_id}"
    try:
        return firebase_admin.get_app(name)
    except ValueError:
        pass
    return firebase_admin.initialize_app(
        _credential(environ),
        {"projectId": project_id},
        name=name,
    )


def create_firestore_client(
    project_id: str,
    emulator_host: Optional[str] = None,
    database: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> firestore.AsyncClient:
    """Build an AsyncClient for `project_id`.

    Environment variables respected:
      - FIRESTORE_EMULATOR_HOST (also read by google-cloud-firestore itself)
      - FIRESTORE_DATABASE_ID
      - FIREBASE_SERVICE_ACCOUNT_JSON (path)
      - FIREBASE_CONFIG_JSON (inline JSON)
    """
    env = os.environ if environ is None else environ
    database = database or env.get("FIRESTORE_DATABASE_ID") or DEFAULT_DATABASE

    if emulator_host:
        logger.info("Firestore emulator host: %s", emulator_host)
        db = firestore.AsyncClient(project=project_id, database=database)
    else:
        logger.info("Connecting to production Firestore")
        app = _firebase_app(project_id, env)
        db = firestore_async.client(app=app, database_id=database)

    logger.info("Firestore instance created (project=%s, database=%s)", project_id, database)
    return db


async def probe_connection(db: firestore.AsyncClient) -> None:
    """Read at most one document to prove the backend is reachable. Raises on failure."""
    await db.collection(PROBE_COLLECTION).limit(1).get()
    logger.info("Successfully connected to Firestore")
