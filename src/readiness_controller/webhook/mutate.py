"""Admission mutation: inject a readiness gate into labelled Deployments."""

from __future__ import annotations

import base64
import json
import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)

INJECT_LABEL = "readiness-controller.io/inject"
CONDITION_PREFIX = "controller.rc/"
GATES_PATH = "/spec/template/spec/readinessGates"
PATCH_TYPE = "JSONPatch"
_REVIEW_API_VERSION = "admission.k8s.io/v1"


def condition_type(gate_name: str) -> str:
    """Full pod condition type for a gate; already-prefixed names are kept."""
    if gate_name.startswith(CONDITION_PREFIX):
        return gate_name
    return f"{CONDITION_PREFIX}{gate_name}"


@dataclass
class AdmissionResponse:
    allowed: bool = True
    uid: str = ""
    patch: list[dict] | None = None
    message: str | None = None

    def to_dict(self) -> dict:
        out: dict = {"uid": self.uid, "allowed": self.allowed}
        if self.patch is not None:
            raw = json.dumps(self.patch, separators=(",", ":")).encode("utf-8")
            out["patch"] = base64.b64encode(raw).decode("ascii")
            out["patchType"] = PATCH_TYPE
        if self.message:
            out["status"] = {"message": self.message}
        return out


class _DecodeError(ValueError):
    pass


def _decode_gates(obj: object) -> tuple[dict, list]:
    if not isinstance(obj, dict):
        raise _DecodeError("object is not a JSON object")
    metadata = obj.get("metadata") or {}
    if not isinstance(metadata, dict):
        raise _DecodeError("metadata is not an object")
    labels = metadata.get("labels") or {}
    if not isinstance(labels, dict):
        raise _DecodeError("metadata.labels is not an object")

    spec = obj.get("spec") or {}
    if not isinstance(spec, dict):
        raise _DecodeError("spec is not an object")
    template = spec.get("template") or {}
    if not isinstance(template, dict):
        raise _DecodeError("spec.template is not an object")
    pod_spec = template.get("spec") or {}
    if not isinstance(pod_spec, dict):
        raise _DecodeError("spec.template.spec is not an object")
    gates = pod_spec.get("readinessGates") or []
    if not isinstance(gates, list):
        raise _DecodeError("spec.template.spec.readinessGates is not a list")
    return labels, gates


def mutate(request: dict | None, label: str = INJECT_LABEL) -> AdmissionResponse:
    """Compute the admission decision for one AdmissionRequest.

    Always allows. Returns a JSON patch only for Deployments carrying
    ``label``; decode problems come back as an allowed response with a message.
    """
    if not isinstance(request, dict):
        return AdmissionResponse()
    uid = str(request.get("uid") or "")
    kind = request.get("kind")
    if not isinstance(kind, dict) or kind.get("kind") != "Deployment":
        return AdmissionResponse(uid=uid)

    obj = request.get("object")
    try:
        labels, gates = _decode_gates(obj)
    except _DecodeError as exc:
        logger.warning("Cannot decode deployment in admission request %s: %s", uid or "<no uid>", exc)
        return AdmissionResponse(uid=uid, message=f"cannot decode deployment: {exc}")

    gate_name = labels.get(label)
    if gate_name is None:
        return AdmissionResponse(uid=uid)

    full_type = condition_type(str(gate_name))
    existing = {gate.get("conditionType") for gate in gates if isinstance(gate, dict)}
    name = (obj.get("metadata") or {}).get("name") or request.get("name") or "<unnamed>"
    if full_type in existing:
        logger.info("Deployment %s already carries readiness gate '%s'", name, full_type)
        return AdmissionResponse(uid=uid)

    logger.info("Injecting readiness gate '%s' into deployment %s", gate_name, name)
    if gates:
        patch = [{"op": "add", "path": f"{GATES_PATH}/-", "value": {"conditionType": full_type}}]
    else:
        patch = [{"op": "add", "path": GATES_PATH, "value": [{"conditionType": full_type}]}]
    return AdmissionResponse(uid=uid, patch=patch)


def review_response(body: bytes | str, label: str = INJECT_LABEL) -> dict:
    """Answer a raw AdmissionReview body with a complete AdmissionReview."""
    try:
        review = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        logger.warning("Error decoding admission review: %s", exc)
        review = None
        response = AdmissionResponse(message=f"invalid admission review: {exc}")
    else:
        if not isinstance(review, dict):
            response = AdmissionResponse(message="invalid admission review: not an object")
        else:
            response = mutate(review.get("request"), label=label)

    api_version = _REVIEW_API_VERSION
    if isinstance(review, dict) and isinstance(review.get("apiVersion"), str):
        api_version = review["apiVersion"]
    return {
        "apiVersion": api_version,
        "kind": "AdmissionReview",
        "response": response.to_dict(),
    }
