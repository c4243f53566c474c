"""Admission review and response models shared by webhooks and handlers."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional


class _ValueEnum(str, Enum):
    def __str__(self) -> str:
        return self.value


class AdmissionReviewVersion(_ValueEnum):
    """Version of the received admission review."""

    V1BETA1 = "v1beta1"
    V1 = "v1"


class AdmissionReviewOp(_ValueEnum):
    """Operation that triggered the admission review."""

    UNKNOWN = "unknown"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    CONNECT = "connect"


class WebhookKind(_ValueEnum):
    """Kind of a webhook."""

    MUTATING = "mutating"
    VALIDATING = "validating"


@dataclass(frozen=True)
class GroupVersionResource:
    """A Kubernetes group, version and resource."""

    group: str = ""
    version: str = ""
    resource: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "GroupVersionResource":
        return cls(
            group=data.get("group", ""),
            version=data.get("version", ""),
            resource=data.get("resource", ""),
        )


@dataclass(frozen=True)
class GroupVersionKind:
    """A Kubernetes group, version and kind."""

    group: str = ""
    version: str = ""
    kind: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "GroupVersionKind":
        return cls(
            group=data.get("group", ""),
            version=data.get("version", ""),
            kind=data.get("kind", ""),
        )


@dataclass
class AdmissionReview:
    """A version independent view of an admission review request."""

    original_admission_review: Optional[Mapping[str, Any]] = None
    id: str = ""
    name: str = ""
    namespace: str = ""
    operation: AdmissionReviewOp = AdmissionReviewOp.UNKNOWN
    version: AdmissionReviewVersion = AdmissionReviewVersion.V1
    request_gvr: GroupVersionResource = field(default_factory=GroupVersionResource)
    request_gvk: GroupVersionKind = field(default_factory=GroupVersionKind)
    old_object_raw: Optional[bytes] = None
    new_object_raw: Optional[bytes] = None
    dry_run: bool = False
    user_info: dict = field(default_factory=dict)


class AdmissionResponse:
    """Base of every webhook response."""

    __slots__ = ()


@dataclass
class ValidatingAdmissionResponse(AdmissionResponse):
    """Response of a validating webhook."""

    id: str = ""
    allowed: bool = False
    message: str = ""
    warnings: list = field(default_factory=list)


@dataclass
class MutatingAdmissionResponse(AdmissionResponse):
    """Response of a mutating webhook."""

    id: str = ""
    json_patch_patch: bytes = b""
    warnings: list = field(default_factory=list)


_OPERATIONS = {
    "CREATE": AdmissionReviewOp.CREATE,
    "UPDATE": AdmissionReviewOp.UPDATE,
    "DELETE": AdmissionReviewOp.DELETE,
    "CONNECT": AdmissionReviewOp.CONNECT,
}


def _raw(value: Any) -> Optional[bytes]:
    if value is None:
        return None
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str):
        return value.encode()
    return json.dumps(value, separators=(",", ":")).encode()


def _new_admission_review(
    ar: Mapping[str, Any], version: AdmissionReviewVersion
) -> AdmissionReview:
    request = ar.get("request")
    if not isinstance(request, Mapping):
        raise ValueError("admission review has no request")

    request_resource = request.get("requestResource")
    if request_resource is None:
        request_resource = request.get("resource") or {}
    request_kind = request.get("requestKind")
    if request_kind is None:
        request_kind = request.get("kind") or {}

    return AdmissionReview(
        original_admission_review=ar,
        id=str(request.get("uid", "")),
        name=request.get("name", ""),
        namespace=request.get("namespace", ""),
        operation=_OPERATIONS.get(request.get("operation"), AdmissionReviewOp.UNKNOWN),
        version=version,
        request_gvr=GroupVersionResource.from_dict(request_resource),
        request_gvk=GroupVersionKind.from_dict(request_kind),
        old_object_raw=_raw(request.get("oldObject")),
        new_object_raw=_raw(request.get("object")),
        dry_run=bool(request.get("dryRun") or False),
        user_info=dict(request.get("userInfo") or {}),
    )


def new_admission_review_v1beta1(ar: Mapping[str, Any]) -> AdmissionReview:
    """Build a model review from an admission.k8s.io/v1beta1 review."""
    return _new_admission_review(ar, AdmissionReviewVersion.V1BETA1)


def new_admission_review_v1(ar: Mapping[str, Any]) -> AdmissionReview:
    """Build a model review from an admission.k8s.io/v1 review."""
    return _new_admission_review(ar, AdmissionReviewVersion.V1)