from __future__ import annotations

import base64
import logging

from readiness_controller.k8s.client import KubeClient, webhook_config_path

logger = logging.getLogger(__name__)


def patch_webhook_ca_bundle(client: KubeClient, config_name: str, ca_pem: bytes) -> int:
    """Point every webhook of a MutatingWebhookConfiguration at ``ca_pem``.

    Returns the number of webhook entries updated. API errors propagate.
    """
    path = webhook_config_path(config_name)
    config = client.get(path)
    logger.info("Injecting CA bundle into webhook configuration %s", config_name)

    bundle = base64.b64encode(ca_pem).decode("ascii")
    webhooks = config.get("webhooks")
    if not isinstance(webhooks, list):
        webhooks = []
    updated = 0
    for webhook in webhooks:
        if not isinstance(webhook, dict):
            continue
        client_config = webhook.get("clientConfig")
        if not isinstance(client_config, dict):
            client_config = {}
            webhook["clientConfig"] = client_config
        client_config["caBundle"] = bundle
        updated += 1

    client.replace(path, config)
    logger.info("Patched CA bundle on %d webhook(s) of %s", updated, config_name)
    return updated
