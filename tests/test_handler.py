import io
import json
import logging

import pytest

from kubewebhook.handler import (
    MAX_REQUEST_BODY_BYTES,
    HandlerConfig,
    HandlerConfigError,
    RequestEntityTooLargeError,
    WebhookHandler,
    handler_for,
)
from kubewebhook.log import StdLogger, values_from_ctx
from kubewebhook.model import (
    AdmissionResponse,
    MutatingAdmissionResponse,
    ValidatingAdmissionResponse,
)
from kubewebhook.tracing import NoopTracer


class _FakeWebhook:
    def __init__(self, response=None, error=None, webhook_id=""):
        self._response = response
        self._error = error
        self._id = webhook_id
        self.calls = []

    def id(self):
        return self._id

    def kind(self):
        return ""

    def review(self, ctx, review):
        self.calls.append((ctx, review))
        if self._error is not None:
            raise self._error
        return self._response


def _request_body(api_version, uid):
    gvk = {"group": "core", "version": "v1", "kind": "Pod"}
    review = {
        "kind": "AdmissionReview",
        "apiVersion": api_version,
        "request": {
            "uid": uid,
            "kind": gvk,
            "resource": {"group": "", "version": "", "resource": ""},
            "requestKind": gvk,
            "operation": "",
            "userInfo": {},
            "object": {
                "metadata": {"name": "test", "creationTimestamp": None},
                "spec": {"containers": None},
                "status": {},
            },
            "oldObject": None,
        },
    }
    return json.dumps(review, indent=2).encode()


V1BETA1 = _request_body("admission.k8s.io/v1beta1", "1234567890")
V1 = _request_body("admission.k8s.io/v1", "1234567890")
WARNINGS = ["warn1", "warn2"]

CASES = [
    (
        "validating v1beta1 allows",
        V1BETA1,
        _FakeWebhook(ValidatingAdmissionResponse(id="1234567890", allowed=True, warnings=WARNINGS)),
        200,
        '{"kind":"AdmissionReview","apiVersion":"admission.k8s.io/v1beta1","response":{"uid":"1234567890","allowed":true}}',
    ),
    (
        "validating v1beta1 denies",
        V1BETA1,
        _FakeWebhook(
            ValidatingAdmissionResponse(
                id="1234567890",
                allowed=False,
                message="this is not valid because reasons",
                warnings=WARNINGS,
            )
        ),
        200,
        '{"kind":"AdmissionReview","apiVersion":"admission.k8s.io/v1beta1","response":{"uid":"1234567890","allowed":false,"status":{"metadata":{},"status":"Failure","message":"this is not valid because reasons","code":400}}}',
    ),
    (
        "mutating v1beta1 with mutation",
        V1BETA1,
        _FakeWebhook(
            MutatingAdmissionResponse(
                id="1234567890", json_patch_patch=b'{"something": something}', warnings=WARNINGS
            )
        ),
        200,
        '{"kind":"AdmissionReview","apiVersion":"admission.k8s.io/v1beta1","response":{"uid":"1234567890","allowed":true,"patch":"eyJzb21ldGhpbmciOiBzb21ldGhpbmd9","patchType":"JSONPatch"}}',
    ),
    (
        "mutating v1beta1 without mutation",
        V1BETA1,
        _FakeWebhook(MutatingAdmissionResponse(id="1234567890", json_patch_patch=b"", warnings=WARNINGS)),
        200,
        '{"kind":"AdmissionReview","apiVersion":"admission.k8s.io/v1beta1","response":{"uid":"1234567890","allowed":true,"patchType":"JSONPatch"}}',
    ),
    (
        "validating v1 allows",
        V1,
        _FakeWebhook(ValidatingAdmissionResponse(id="1234567890", allowed=True, warnings=WARNINGS)),
        200,
        '{"kind":"AdmissionReview","apiVersion":"admission.k8s.io/v1","response":{"uid":"1234567890","allowed":true,"warnings":["warn1","warn2"]}}',
    ),
    (
        "validating v1 denies",
        V1,
        _FakeWebhook(
            ValidatingAdmissionResponse(
                id="1234567890",
                allowed=False,
                message="this is not valid because reasons",
                warnings=WARNINGS,
            )
        ),
        200,
        '{"kind":"AdmissionReview","apiVersion":"admission.k8s.io/v1","response":{"uid":"1234567890","allowed":false,"status":{"metadata":{},"status":"Failure","message":"this is not valid because reasons","code":400},"warnings":["warn1","warn2"]}}',
    ),
    (
        "mutating v1 with mutation",
        V1,
        _FakeWebhook(
            MutatingAdmissionResponse(
                id="1234567890", json_patch_patch=b'{"something": something}', warnings=WARNINGS
            )
        ),
        200,
        '{"kind":"AdmissionReview","apiVersion":"admission.k8s.io/v1","response":{"uid":"1234567890","allowed":true,"patch":"eyJzb21ldGhpbmciOiBzb21ldGhpbmd9","patchType":"JSONPatch","warnings":["warn1","warn2"]}}',
    ),
    (
        "mutating v1 without mutation",
        V1,
        _FakeWebhook(MutatingAdmissionResponse(id="1234567890", json_patch_patch=b"", warnings=WARNINGS)),
        200,
        '{"kind":"AdmissionReview","apiVersion":"admission.k8s.io/v1","response":{"uid":"1234567890","allowed":true,"patchType":"JSONPatch","warnings":["warn1","warn2"]}}',
    ),
    (
        "v1beta1 webhook error",
        V1BETA1,
        _FakeWebhook(error=RuntimeError("wanted error")),
        500,
        '{"kind":"AdmissionReview","apiVersion":"admission.k8s.io/v1beta1","response":{"uid":"1234567890","allowed":false,"status":{"metadata":{},"status":"Failure","message":"wanted error"}}}',
    ),
    (
        "v1 webhook error",
        V1,
        _FakeWebhook(error=RuntimeError("wanted error")),
        500,
        '{"kind":"AdmissionReview","apiVersion":"admission.k8s.io/v1","response":{"uid":"1234567890","allowed":false,"status":{"metadata":{},"status":"Failure","message":"wanted error"}}}',
    ),
]


@pytest.mark.parametrize(
    "body, webhook, exp_code, exp_body", [case[1:] for case in CASES], ids=[case[0] for case in CASES]
)
def test_default_webhook_flow(body, webhook, exp_code, exp_body):
    handler = handler_for(HandlerConfig(webhook=webhook))
    code, _, payload = handler.handle(body, "/awesome/webhook")
    assert code == exp_code
    assert payload.decode() == exp_body


def test_no_body_returns_bad_request():
    handler = handler_for(HandlerConfig(webhook=_FakeWebhook()))
    code, headers, payload = handler.handle(b"", "/awesome/webhook")
    assert code == 400
    assert payload == b"no body found\n"
    assert headers["Content-Type"] == "text/plain; charset=utf-8"


def test_bad_body_returns_bad_request():
    webhook = _FakeWebhook()
    handler = handler_for(HandlerConfig(webhook=webhook))
    code, _, payload = handler.handle(b"wrong body", "/awesome/webhook")
    assert code == 400
    assert payload.startswith(b"could not decode the admission review from the request: ")
    assert payload.endswith(b"\n")
    assert webhook.calls == []


def test_unregistered_kind_returns_bad_request():
    handler = handler_for(HandlerConfig(webhook=_FakeWebhook()))
    body = json.dumps({"kind": "Pod", "apiVersion": "v1"}).encode()
    code, _, payload = handler.handle(body, "/")
    assert code == 400
    assert b'no kind "Pod" is registered for version "v1"' in payload


def test_too_large_body_returns_bad_request():
    handler = handler_for(HandlerConfig(webhook=_FakeWebhook()))
    code, _, payload = handler.handle(b" " * (MAX_REQUEST_BODY_BYTES + 1), "/")
    assert code == 400
    assert payload == b"Request entity too large: limit is 6291456\n"


def test_request_entity_too_large_message():
    assert str(RequestEntityTooLargeError("limit is 1")) == "Request entity too large: limit is 1"


def test_unknown_response_type_is_internal_error():
    class _Other(AdmissionResponse):
        pass

    handler = handler_for(HandlerConfig(webhook=_FakeWebhook(_Other())))
    code, _, payload = handler.handle(V1, "/")
    assert code == 500
    assert json.loads(payload)["response"]["status"] == {
        "metadata": {},
        "status": "Failure",
        "message": "unknown webhook response type",
    }


def test_missing_webhook_raises():
    with pytest.raises(HandlerConfigError, match="webhook can't be nil"):
        handler_for(HandlerConfig())


def test_log_values_are_set_on_context():
    webhook = _FakeWebhook(
        ValidatingAdmissionResponse(id="1234567890", allowed=True), webhook_id="pod-annotate"
    )
    logger = StdLogger(logging.getLogger("kubewebhook.tests"))
    handler = handler_for(HandlerConfig(webhook=webhook, logger=logger))
    handler.handle(V1, "/awesome/webhook")

    ctx, review = webhook.calls[0]
    values = values_from_ctx(ctx)
    assert review.id == "1234567890"
    assert values["kind"] == "core/v1/Pod"
    assert values["request-id"] == "1234567890"
    assert values["path"] == "/awesome/webhook"
    assert values["webhook-id"] == "pod-annotate"
    assert values["dry-run"] is False


def test_tracer_wraps_the_handler():
    class _RecordingTracer(NoopTracer):
        def __init__(self):
            self.values = []
            self.names = []

        def with_values(self, values):
            self.values.append(dict(values))
            return self

        def trace_http_handler(self, name, handler):
            self.names.append(name)
            return handler

    tracer = _RecordingTracer()
    handler = handler_for(HandlerConfig(webhook=_FakeWebhook(), tracer=tracer))
    assert isinstance(handler, WebhookHandler)
    assert tracer.names == ["webhookHTTPHandler"]
    assert tracer.values == [{"svc": "http.Handler"}]


def test_wsgi_call():
    webhook = _FakeWebhook(ValidatingAdmissionResponse(id="1234567890", allowed=True))
    handler = handler_for(HandlerConfig(webhook=webhook))
    started = {}

    def start_response(status, headers):
        started["status"] = status
        started["headers"] = dict(headers)

    environ = {
        "REQUEST_METHOD": "POST",
        "PATH_INFO": "/validate",
        "CONTENT_LENGTH": str(len(V1)),
        "wsgi.input": io.BytesIO(V1),
    }
    payload = b"".join(handler(environ, start_response))
    assert started["status"] == "200 OK"
    assert started["headers"]["Content-Type"] == "application/json"
    assert started["headers"]["Content-Length"] == str(len(payload))
    assert json.loads(payload)["response"] == {"uid": "1234567890", "allowed": True}


def test_wsgi_call_without_content_length_has_no_body():
    handler = handler_for(HandlerConfig(webhook=_FakeWebhook()))
    started = {}

    def start_response(status, headers):
        started["status"] = status

    environ = {"PATH_INFO": "/", "wsgi.input": io.BytesIO(V1)}
    payload = b"".join(handler(environ, start_response))
    assert started["status"] == "400 Bad Request"
    assert payload == b"no body found\n"