from Entropy_decomp.adapters.errors import AdapterChainExhaustedError, RateLimitError, UnknownAdapterError
from Entropy_decomp.utils.errors import FoundationError, ProblemDetail, error_code


def test_problem_detail_drops_empty_fields():
    problem = ProblemDetail(title="Error", status=400, detail="Bad")

    assert problem.model_dump() == {"title": "Error", "status": 400, "detail": "Bad", "type": "about:blank"}


def test_foundation_error_wraps_problem():
    error = FoundationError("Oops", code="REQUIREMENT_NOT_FOUND", status=404)

    assert error.problem.status == 404
    assert error.problem.type == "urn:entropy:error:requirement_not_found"
    assert error.message == "Oops"
    assert error.retryable is False


def test_subclass_codes_and_retryability():
    error = RateLimitError(provider="anthropic")

    assert error.code == "RATE_LIMIT"
    assert error.retryable is True
    assert error.problem.extra == {"provider": "anthropic"}


def test_chain_error_inherits_last_code():
    chain = AdapterChainExhaustedError("all failed", [ValueError("x"), RateLimitError()])

    assert chain.code == "RATE_LIMIT"
    assert chain.retryable is True
    assert AdapterChainExhaustedError("none", []).code == "ALL_ADAPTERS_FAILED"


def test_chain_error_skips_unregistered_fallbacks():
    chain = AdapterChainExhaustedError("all failed", [RateLimitError(), UnknownAdapterError("google-gemini-pro")])
    only_missing = AdapterChainExhaustedError("all failed", [UnknownAdapterError("google-gemini-pro")])

    assert chain.code == "RATE_LIMIT"
    assert chain.retryable is True
    assert only_missing.code == "UNKNOWN_ADAPTER"
    assert only_missing.retryable is False


def test_error_code_ignores_non_string_codes():
    exc = OSError(2, "No such file")

    assert error_code(FoundationError("x", code="TIMEOUT")) == "TIMEOUT"
    assert error_code(exc) is None
