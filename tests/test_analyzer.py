import pytest

from pricescout.analyzer import QuotationAnalyzer
from pricescout.errors import RateLimited, ValidationError
from pricescout.models import ManualAnalysisRequest, QuotationAnalysis, UnparsedAnalysis
from pricescout.step_runner import PipelineStep, StepRunner


def test_runner_executes_steps_in_order():
    calls = []
    runner = StepRunner([PipelineStep(name, lambda ctx, name=name: calls.append(name)) for name in "abc"])
    runner.run(object())
    assert calls == ["a", "b", "c"]


def test_runner_stops_at_first_failure():
    calls = []

    def boom(ctx):
        raise RuntimeError("step failed")

    runner = StepRunner([PipelineStep("first", boom), PipelineStep("second", lambda ctx: calls.append("second"))])
    with pytest.raises(RuntimeError):
        runner.run(object())
    assert calls == []


@pytest.mark.parametrize(
    "payload",
    [
        {"mode": "manual", "location": "Mumbai"},
        {"mode": "quotation", "location": "Mumbai"},
        {"location": "y" * 250, "quotationText": "chair"},
        "not an object",
    ],
)
def test_invalid_payload_never_reaches_gateway(settings, upstream, payload):
    with upstream.client() as http_client, pytest.raises(ValidationError):
        QuotationAnalyzer(settings, http_client).run(payload)
    assert upstream.gateway_calls == []


def test_manual_run_produces_decoded_analysis(settings, upstream):
    with upstream.client() as http_client:
        context = QuotationAnalyzer(settings, http_client).run(
            {"mode": "manual", "location": "Mumbai", "productName": "Laptop", "quotedPrice": 65000}
        )
    assert isinstance(context.request, ManualAnalysisRequest)
    assert isinstance(context.result, QuotationAnalysis)
    assert len(upstream.gateway_calls) == 1
    messages = upstream.gateway_calls[0]["messages"]
    assert "₹65000" in messages[0]["content"]
    assert "location: Mumbai" in messages[1]["content"]


def test_unparseable_reply_is_a_successful_fallback(settings, upstream):
    upstream.gateway_content = "Sorry, I cannot help with that."
    with upstream.client() as http_client:
        context = QuotationAnalyzer(settings, http_client).run(
            {"location": "Mumbai", "quotationText": "1x Printer 12,000"}
        )
    assert isinstance(context.result, UnparsedAnalysis)
    assert context.result.raw_content == "Sorry, I cannot help with that."


def test_gateway_errors_propagate(settings, upstream):
    upstream.gateway_status = 429
    with upstream.client() as http_client, pytest.raises(RateLimited):
        QuotationAnalyzer(settings, http_client).run(
            {"mode": "manual", "location": "Mumbai", "productName": "Laptop"}
        )
