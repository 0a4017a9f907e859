"""Firestore client singleton."""

from __future__ import annotations

import logging
import os
from typing import Any

from google.cloud import firestore

logger = logging.getLogger(__name__)

_client: Any = None


def get_firestore_client() -> Any:
    """Return a lazy-initialized Firestore ``Client``.

    Snapshot listeners (``on_snapshot``) only exist on the synchronous
    client, so that is the one geo queries run on.  Uses Application
    Default Credentials (ADC); ``GOOGLE_CLOUD_PROJECT`` selects the
    project and ``FIRESTORE_EMULATOR_HOST`` is honoured by the library.
    """
    global _client
    if _client is not None:
        return _client

    project = os.environ.get("GOOGLE_CLOUD_PROJECT")
    _client = firestore.Client(project=project)
    if os.environ.get("FIRESTORE_EMULATOR_HOST"):
        logger.info("Using Firestore emulator at %s", os.environ["FIRESTORE_EMULATOR_HOST"])
    else:
        logger.info("Using Google Cloud Firestore (project=%s)", project or "<default>")
    return _client


def _reset_client() -> None:
    """Reset the singleton (for testing only)."""
    global _client
    _client = None
