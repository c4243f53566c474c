"""WSGI handler serving admission reviews through a webhook."""

from __future__ import annotations

import base64
import json
import time
from dataclasses import dataclass, replace
from http import HTTPStatus
from typing import Any, Callable, Iterable, Mapping, Optional, Protocol

from .log import NOOP as NOOP_LOGGER
from .log import Logger
from .model import (
    AdmissionResponse,
    AdmissionReview,
    AdmissionReviewVersion,
    MutatingAdmissionResponse,
    ValidatingAdmissionResponse,
    new_admission_review_v1,
    new_admission_review_v1beta1,
)
from .tracing import NOOP as NOOP_TRACER
from .tracing import Tracer

# Kubernetes allows a 2x buffer on the max etcd size; a further 2x buffer is
# still cheap, giving 6MiB.
MAX_REQUEST_BODY_BYTES = 6 * 1024 * 1024

_READ_CHUNK = 64 * 1024
_JSON_PATCH_TYPE = "JSONPatch"
_TYPE_META = {
    AdmissionReviewVersion.V1BETA1: {
        "kind": "AdmissionReview",
        "apiVersion": "admission.k8s.io/v1beta1",
    },
    AdmissionReviewVersion.V1: {
        "kind": "AdmissionReview",
        "apiVersion": "admission.k8s.io/v1",
    },
}
_DECODERS: dict[tuple[str, str], Callable[[Mapping[str, Any]], AdmissionReview]] = {
    ("admission.k8s.io/v1beta1", "AdmissionReview"): new_admission_review_v1beta1,
    ("admission.k8s.io/v1", "AdmissionReview"): new_admission_review_v1,
}
_TEXT_HEADERS = {
    "Content-Type": "text/plain; charset=utf-8",
    "X-Content-Type-Options": "nosniff",
}
_JSON_HEADERS = {"Content-Type": "application/json"}


class _Webhook(Protocol):
    def id(self) -> str: ...

    def kind(self) -> str: ...

    def review(self, ctx: Any, review: AdmissionReview) -> AdmissionResponse: ...


class HandlerConfigError(ValueError):
    """The handler configuration is invalid."""


class RequestEntityTooLargeError(ValueError):
    """The request body exceeds the allowed size."""

    def __init__(self, message: str) -> None:
        super().__init__(f"Request entity too large: {message}")


class _ReviewDecodeError(ValueError):
    pass


@dataclass
class HandlerConfig:
    """Configuration of a webhook handler."""

    webhook: Optional[_Webhook] = None
    logger: Optional[Logger] = None
    tracer: Optional[Tracer] = None

    def _with_defaults(self) -> "HandlerConfig":
        if self.webhook is None:
            raise HandlerConfigError("webhook can't be nil")
        logger = self.logger if self.logger is not None else NOOP_LOGGER
        tracer = self.tracer if self.tracer is not None else NOOP_TRACER
        return replace(
            self,
            logger=logger.with_values({"svc": "http.Handler"}),
            tracer=tracer.with_values({"svc": "http.Handler"}),
        )


Response = tuple[int, dict, bytes]


def _marshal(obj: Any) -> bytes:
    text = json.dumps(obj, separators=(",", ":"), ensure_ascii=False)
    for char, escaped in (
        ("<", "\\u003c"),
        (">", "\\u003e"),
        ("&", "\\u0026"),
        ("\u2028", "\\u2028"),
        ("\u2029", "\\u2029"),
    ):
        text = text.replace(char, escaped)
    return text.encode()


def _text_error(code: int, message: str) -> Response:
    return code, dict(_TEXT_HEADERS), f"{message}\n".encode()


def _failure_status(message: str, code: Optional[int] = None) -> dict:
    status: dict = {"metadata": {}, "status": "Failure"}
    if message:
        status["message"] = message
    if code:
        status["code"] = code
    return status


def _decode_review(body: bytes) -> AdmissionReview:
    prefix = "could not decode the admission review from the request"
    try:
        data = json.loads(body)
    except (UnicodeDecodeError, json.JSONDecodeError) as err:
        raise _ReviewDecodeError(
            f"{prefix}: couldn't get version/kind; json parse error: {err}"
        ) from err
    if not isinstance(data, Mapping):
        raise _ReviewDecodeError(
            f"{prefix}: couldn't get version/kind; json parse error: "
            f"expected an object, got {type(data).__name__}"
        )
    text = body.decode(errors="replace")
    kind = data.get("kind")
    if not kind:
        raise _ReviewDecodeError(f"{prefix}: Object 'Kind' is missing in '{text}'")
    api_version = data.get("apiVersion")
    if not api_version:
        raise _ReviewDecodeError(
            f"{prefix}: Object 'apiVersion' is missing in '{text}'"
        )
    decoder = _DECODERS.get((api_version, kind))
    if decoder is None:
        raise _ReviewDecodeError(
            f'{prefix}: no kind "{kind}" is registered for version "{api_version}" in scheme'
        )
    try:
        return decoder(data)
    except ValueError as err:
        raise _ReviewDecodeError(f"{prefix}: {err}") from err


def _read_wsgi_body(environ: Mapping[str, Any]) -> bytes:
    stream = environ.get("wsgi.input")
    if stream is None:
        return b""
    limit = MAX_REQUEST_BODY_BYTES + 1
    try:
        limit = min(int(environ.get("CONTENT_LENGTH") or ""), limit)
    except ValueError:
        if not environ.get("wsgi.input_terminated"):
            return b""
    chunks = []
    remaining = limit
    while remaining > 0:
        chunk = stream.read(min(remaining, _READ_CHUNK))
        if not chunk:
            break
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


class WebhookHandler:
    """Handles admission review requests with a webhook; usable as a WSGI app."""

    def __init__(self, webhook: _Webhook, logger: Logger, tracer: Tracer) -> None:
        self._webhook = webhook
        self._logger = logger
        self._tracer = tracer

    def handle(self, body: Optional[bytes], path: str = "") -> Response:
        """Process a request body; return the status code, headers and body."""
        started = time.monotonic()
        body = body or b""

        if len(body) > MAX_REQUEST_BODY_BYTES:
            err = RequestEntityTooLargeError(f"limit is {MAX_REQUEST_BODY_BYTES}")
            self._logger.error("%s", str(err))
            return _text_error(HTTPStatus.BAD_REQUEST, str(err))
        if not body:
            self._logger.error("no body found")
            return _text_error(HTTPStatus.BAD_REQUEST, "no body found")

        try:
            review = _decode_review(body)
        except _ReviewDecodeError as err:
            self._logger.error("could not parse body to model review: %s", err)
            return _text_error(HTTPStatus.BAD_REQUEST, str(err))

        gvk = review.request_gvk
        ctx: Any = {}
        ctx = self._logger.set_values_on_ctx(
            ctx,
            {
                "webhook-id": self._webhook.id(),
                "webhook-kind": self._webhook.kind(),
                "request-id": review.id,
                "op": review.operation,
                "wh-version": review.version,
                "dry-run": review.dry_run,
                "kind": "/".join([gvk.group, gvk.version, gvk.kind]).strip(" /"),
                "ns": review.namespace,
                "name": review.name,
                "path": path,
                "trace-id": self._tracer.trace_id(ctx),
            },
        )
        logger = self._logger.with_ctx_values(ctx)

        try:
            response = self._webhook.review(ctx, review)
        except Exception as err:  # noqa: BLE001 - any webhook failure is a review error
            logger.error("Admission review error: %s", err)
            return HTTPStatus.INTERNAL_SERVER_ERROR, dict(_JSON_HEADERS), self._error_to_json(review, err)

        try:
            payload = self._response_to_json(logger, review, response)
        except TypeError as err:
            logger.error("Could not map model response to JSON: %s", err)
            return HTTPStatus.INTERNAL_SERVER_ERROR, dict(_JSON_HEADERS), self._error_to_json(review, err)

        logger.with_values({"duration": time.monotonic() - started}).info(
            "Admission review request handled"
        )
        return HTTPStatus.OK, dict(_JSON_HEADERS), payload

    def __call__(self, environ: Mapping[str, Any], start_response: Callable) -> Iterable[bytes]:
        try:
            body = _read_wsgi_body(environ)
        except OSError as err:
            self._logger.error("%s", str(err))
            code, headers, payload = _text_error(HTTPStatus.BAD_REQUEST, str(err))
        else:
            code, headers, payload = self.handle(body, environ.get("PATH_INFO", ""))
        headers = {**headers, "Content-Length": str(len(payload))}
        status = HTTPStatus(code)
        start_response(f"{status.value} {status.phrase}", list(headers.items()))
        return [payload]

    def _response_to_json(
        self, logger: Logger, review: AdmissionReview, resp: AdmissionResponse
    ) -> bytes:
        if isinstance(resp, ValidatingAdmissionResponse):
            response: dict = {"uid": review.id, "allowed": resp.allowed}
            if not resp.allowed:
                response["status"] = _failure_status(resp.message, HTTPStatus.BAD_REQUEST)
        elif isinstance(resp, MutatingAdmissionResponse):
            response = {"uid": review.id, "allowed": True}
            if resp.json_patch_patch:
                response["patch"] = base64.b64encode(resp.json_patch_patch).decode()
            response["patchType"] = _JSON_PATCH_TYPE
        else:
            raise TypeError("unknown webhook response type")

        if resp.warnings:
            if review.version == AdmissionReviewVersion.V1BETA1:
                logger.warning("warnings used in a 'v1beta1' webhook")
            else:
                response["warnings"] = list(resp.warnings)

        return self._review_json(review, response)

    def _error_to_json(self, review: AdmissionReview, err: BaseException) -> bytes:
        response = {
            "uid": review.id,
            "allowed": False,
            "status": _failure_status(str(err)),
        }
        return self._review_json(review, response)

    @staticmethod
    def _review_json(review: AdmissionReview, response: dict) -> bytes:
        type_meta = _TYPE_META.get(review.version)
        if type_meta is None:
            raise TypeError("invalid admission response type")
        return _marshal({**type_meta, "response": response})


def handler_for(config: HandlerConfig) -> Any:
    """Return a handler (a WSGI app) that serves admission reviews with a webhook."""
    try:
        config = config._with_defaults()
    except HandlerConfigError as err:
        raise HandlerConfigError(f"handler invalid configuration: {err}") from err

    handler = WebhookHandler(config.webhook, config.logger, config.tracer)
    return config.tracer.trace_http_handler("webhookHTTPHandler", handler)