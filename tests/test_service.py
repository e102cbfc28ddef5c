import asyncio

from fakes import InMemoryCache, ScriptedProvider, make_result
from gateway.config import RouterSettings
from gateway.errors import ProviderError
from gateway.parsing import parse_analysis_response
from gateway.provider import ProviderResult
from gateway.router import ProviderRouter
from gateway.routing import RoutedProvider
from gateway.schemas import JobData
from gateway.service import AnalysisService


def _service(*providers, cache=None):
    router = ProviderRouter(list(providers), RouterSettings())
    return AnalysisService(router, cache or InMemoryCache(), cache_ttl_s=60)


def test_process_analysis_stamps_metadata():
    service = _service(RoutedProvider("a", ScriptedProvider("a", make_result("fine"))))

    response = asyncio.run(service.process_analysis({"k": 1}, "one note", "req-1"))

    assert response.summary == "fine"
    assert response.metadata.request_id == "req-1"
    assert response.metadata.provider == "a"
    assert response.metadata.fallback is None


def test_exhausted_providers_degrade_to_fallback():
    failing = ScriptedProvider("a", ProviderError("a", "bad key", status=401, retryable=False))
    service = _service(RoutedProvider("a", failing))

    response = asyncio.run(service.process_analysis({"k": 1, "j": 2}, ["n"], "req-1"))

    assert response.metadata.fallback is True
    assert response.metadata.confidence_score == 0.3
    assert response.metadata.model_version == "fallback-v1"
    assert response.summary == "Analysis of 2 data fields and 1 notes."


def test_aborted_request_degrades_to_fallback():
    failing = ScriptedProvider("a", ProviderError("a", "bad request", status=400, retryable=False))
    service = _service(RoutedProvider("a", failing))

    response = asyncio.run(service.process_analysis({}, ["n"], "req-1"))

    assert response.metadata.fallback is True


def test_analyze_cached_hits_cache_on_second_call():
    provider = ScriptedProvider("a", make_result("cached me"))
    cache = InMemoryCache()
    service = _service(RoutedProvider("a", provider), cache=cache)

    first = asyncio.run(service.analyze_cached({"k": 1}, ["n"], "req-1"))
    second = asyncio.run(service.analyze_cached({"k": 1}, ["n"], "req-2"))

    assert provider.calls == 1
    assert first.metadata.cached is False
    assert second.metadata.cached is True
    assert second.metadata.request_id == "req-2"
    assert second.summary == "cached me"
    assert cache.ttls[first.metadata.cache_key] == 60


def test_fallback_results_are_not_cached():
    failing = ScriptedProvider("a", RuntimeError("upstream 500"))
    cache = InMemoryCache()
    service = _service(RoutedProvider("a", failing), cache=cache)

    response = asyncio.run(service.analyze_cached({"k": 1}, ["n"], "req-1"))

    assert response.metadata.fallback is True
    assert cache.data == {}


def test_unparseable_replies_are_not_cached():
    reply = parse_analysis_response("a", "m", "sorry, I cannot answer")
    provider = ScriptedProvider("a", ProviderResult(response=reply, model_version="m", raw_response="sorry"))
    cache = InMemoryCache()
    service = _service(RoutedProvider("a", provider), cache=cache)

    first = asyncio.run(service.analyze_cached({"k": 1}, ["n"], "req-1"))
    second = asyncio.run(service.analyze_cached({"k": 1}, ["n"], "req-2"))

    assert cache.data == {}
    assert first.metadata.fallback is True
    assert second.metadata.cached is False
    assert provider.calls == 2


def test_run_job_uses_job_id_as_request_id():
    service = _service(RoutedProvider("a", ScriptedProvider("a")))

    response = asyncio.run(service.run_job(JobData(job_id="job-9", structured_data={}, notes=["n"])))

    assert response.metadata.request_id == "job-9"
