"""Resolve the PingOne client secret from a cloud secret store.

``PINGONE_CLIENT_SECRET`` (or ``--client-secret``) may hold the secret
itself or a reference into a secret store, so the value never has to sit in
a shell history or a .env file:

  - ``aws-secret://NAME``        AWS Secrets Manager, whole SecretString
  - ``aws-secret://NAME#KEY``    AWS Secrets Manager, one key of a JSON secret
  - ``gcp-secret://NAME``        GCP Secret Manager, latest version in the
                                 project from GCP_PROJECT_ID or the metadata server
  - ``gcp-secret://projects/P/secrets/NAME/versions/V``  exact GCP version
"""

from __future__ import annotations

import json
import logging
import os

import requests

logger = logging.getLogger("user_import.secrets")

AWS_SCHEME = "aws-secret://"
GCP_SCHEME = "gcp-secret://"

_GCP_METADATA_PROJECT_URL = (
    "http://metadata.google.internal/computeMetadata/v1/project/project-id"
)


class SecretResolutionError(RuntimeError):
    """A client-secret reference could not be turned into a secret."""


def resolve_client_secret(value: str) -> str:
    """Return the client secret for ``value``, fetching it when it is a reference."""
    if value.startswith(AWS_SCHEME):
        return _from_aws(value[len(AWS_SCHEME):])
    if value.startswith(GCP_SCHEME):
        return _from_gcp(value[len(GCP_SCHEME):])
    return value


def _from_aws(ref: str) -> str:
    import boto3
    from botocore.exceptions import BotoCoreError, ClientError

    secret_id, _, json_key = ref.partition("#")
    if not secret_id:
        raise SecretResolutionError(f"{AWS_SCHEME} reference has no secret name")

    region = os.environ.get("AWS_REGION", "us-east-1")
    logger.info("Reading client secret %s from AWS Secrets Manager (%s)", secret_id, region)
    try:
        client = boto3.client("secretsmanager", region_name=region)
        resp = client.get_secret_value(SecretId=secret_id)
    except (BotoCoreError, ClientError) as exc:
        raise SecretResolutionError(f"AWS secret {secret_id!r} could not be read: {exc}") from exc

    secret = resp.get("SecretString")
    if secret is None:
        raise SecretResolutionError(f"AWS secret {secret_id!r} has no SecretString")
    if not json_key:
        return secret

    try:
        return str(json.loads(secret)[json_key])
    except (ValueError, KeyError, TypeError) as exc:
        raise SecretResolutionError(
            f"AWS secret {secret_id!r} is not a JSON object with key {json_key!r}"
        ) from exc


def _from_gcp(ref: str) -> str:
    from google.api_core.exceptions import GoogleAPIError
    from google.auth.exceptions import GoogleAuthError
    from google.cloud import secretmanager

    if not ref:
        raise SecretResolutionError(f"{GCP_SCHEME} reference has no secret name")
    if ref.startswith("projects/"):
        name = ref
    else:
        project = os.environ.get("GCP_PROJECT_ID", "") or _gcp_project_from_metadata()
        name = f"projects/{project}/secrets/{ref}/versions/latest"

    logger.info("Reading client secret %s from GCP Secret Manager", name)
    try:
        client = secretmanager.SecretManagerServiceClient()
        response = client.access_secret_version(request={"name": name})
    except (GoogleAPIError, GoogleAuthError) as exc:
        raise SecretResolutionError(f"GCP secret {name!r} could not be read: {exc}") from exc
    return response.payload.data.decode("UTF-8")


def _gcp_project_from_metadata() -> str:
    """Project id from the metadata server (Cloud Run, GCE, GKE)."""
    try:
        resp = requests.get(
            _GCP_METADATA_PROJECT_URL,
            headers={"Metadata-Flavor": "Google"},
            timeout=2,
        )
        resp.raise_for_status()
    except requests.RequestException as exc:
        raise SecretResolutionError(
            "Cannot determine the GCP project for the client secret; set GCP_PROJECT_ID"
        ) from exc
    return resp.text.strip()
