import pytest

from pricescout.config import BASE_DIR
from pricescout.errors import ValidationError
from pricescout.models import ManualAnalysisRequest, QuotationAnalysisRequest
from pricescout.normalizer import build_prompts, validate_request

PROMPTS_DIR = BASE_DIR / "prompts"


def _fields(exc_info):
    return [item["field"] for item in exc_info.value.details]


def test_manual_request_is_built_and_trimmed():
    request = validate_request(
        {
            "mode": "manual",
            "location": "  Mumbai ",
            "productName": " Laptop ",
            "specifications": "16GB RAM",
            "quotedPrice": 45000,
        }
    )
    assert isinstance(request, ManualAnalysisRequest)
    assert request.location == "Mumbai"
    assert request.product_name == "Laptop"
    assert request.quoted_price == 45000


def test_mode_defaults_to_quotation():
    request = validate_request({"location": "Pune", "quotationText": "1x Office chair - Rs 8,500"})
    assert isinstance(request, QuotationAnalysisRequest)
    assert request.quotation_text == "1x Office chair - Rs 8,500"


@pytest.mark.parametrize("product_name", [None, "", "   "])
def test_manual_mode_requires_product_name(product_name):
    payload = {"mode": "manual", "location": "Mumbai"}
    if product_name is not None:
        payload["productName"] = product_name
    with pytest.raises(ValidationError) as exc_info:
        validate_request(payload)
    assert "productName" in _fields(exc_info)


@pytest.mark.parametrize("mode", [None, "quotation"])
def test_quotation_mode_requires_quotation_text(mode):
    payload = {"location": "Mumbai", "quotationText": ""}
    if mode:
        payload["mode"] = mode
    with pytest.raises(ValidationError) as exc_info:
        validate_request(payload)
    assert _fields(exc_info) == ["quotationText"]


def test_every_violation_is_reported_together():
    with pytest.raises(ValidationError) as exc_info:
        validate_request({"mode": "manual", "location": "x" * 250, "quotedPrice": -5})
    fields = _fields(exc_info)
    assert "location" in fields
    assert "quotedPrice" in fields
    assert "productName" in fields


def test_quoted_price_upper_bound():
    with pytest.raises(ValidationError) as exc_info:
        validate_request(
            {"mode": "manual", "location": "Delhi", "productName": "Car", "quotedPrice": 1_000_000_000}
        )
    assert _fields(exc_info) == ["quotedPrice"]


def test_unknown_mode_is_rejected():
    with pytest.raises(ValidationError) as exc_info:
        validate_request({"mode": "auction", "location": "Delhi", "productName": "Car"})
    assert "mode" in _fields(exc_info)


def test_missing_location_is_rejected():
    with pytest.raises(ValidationError) as exc_info:
        validate_request({"mode": "manual", "productName": "Car"})
    assert _fields(exc_info) == ["location"]


@pytest.mark.parametrize("payload", [[], "text", 42, None])
def test_non_object_body_is_rejected(payload):
    with pytest.raises(ValidationError) as exc_info:
        validate_request(payload)
    assert _fields(exc_info) == ["body"]


def test_long_location_is_truncated_in_prompt():
    request = ManualAnalysisRequest(location="x" * 500, product_name="Laptop")
    prompts = build_prompts(request, PROMPTS_DIR)
    assert "x" * 200 in prompts.user
    assert "x" * 201 not in prompts.user


def test_manual_prompt_interpolates_quoted_price():
    request = ManualAnalysisRequest(location="Mumbai", product_name="Laptop", quoted_price=45000)
    prompts = build_prompts(request, PROMPTS_DIR)
    assert "₹45000" in prompts.system
    assert "$quoted_price_instruction" not in prompts.system
    assert "Product: Laptop" in prompts.user
    assert "Specifications: Not specified" in prompts.user


def test_manual_prompt_without_quoted_price():
    prompts = build_prompts(ManualAnalysisRequest(location="Mumbai", product_name="Laptop"), PROMPTS_DIR)
    assert "no quoted price" in prompts.system


def test_quotation_prompt_carries_quotation_text():
    request = QuotationAnalysisRequest(location="Chennai", quotation_text="2x Steel almirah @ 14,000")
    prompts = build_prompts(request, PROMPTS_DIR)
    assert prompts.user.startswith("Analyze this quotation for location: Chennai")
    assert "Quotation Content:\n2x Steel almirah @ 14,000" in prompts.user
    assert '"quotedItems"' in prompts.system
    assert [message["role"] for message in prompts.as_messages()] == ["system", "user"]
