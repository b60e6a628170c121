"""
Render Provider Adapter Tests

Run with:
    python -m pytest tests/test_providers.py -v
"""

from datetime import timezone

import pytest

from conftest import FakeRenderAPI
from core.config import RenderConfig
from services.rendering import (
    CreatomateProvider,
    InvalidInput,
    JobStatus,
    ProxyProvider,
    RenderJobTracker,
    ShotstackProvider,
    StatusParseError,
    get_provider,
)


class TestProviderFactory:

    def test_get_provider_by_config(self, render_config):
        assert isinstance(get_provider(render_config), ShotstackProvider)

    def test_get_provider_by_name(self, render_config):
        assert isinstance(get_provider(render_config, "creatomate"), CreatomateProvider)
        assert isinstance(get_provider(render_config, "PROXY"), ProxyProvider)

    def test_unknown_provider(self, render_config):
        with pytest.raises(InvalidInput):
            get_provider(render_config, "remotion")


class TestShotstackProvider:

    def test_prod_environment_base(self):
        config = RenderConfig(shotstack_env="prod", shotstack_api_key="k")
        provider = ShotstackProvider(config)
        assert provider.submit_url() == "https://api.shotstack.io/edit/v1/render"

    def test_callback_added_to_payload(self, render_config):
        provider = ShotstackProvider(render_config)
        payload = provider.submit_payload({"timeline": {}, "output": {}}, "https://hooks/x")
        assert payload["callback"] == "https://hooks/x"

    def test_document_validation(self, render_config):
        provider = ShotstackProvider(render_config)
        assert provider.validate_document({"timeline": {"tracks": []}}) is not None
        assert provider.validate_document({"timeline": {"tracks": []}, "output": {"format": "mp4"}}) is None

    def test_webhook_payload_is_flat(self, render_config):
        """Callbacks are not wrapped in "response"; error may be an object."""
        provider = ShotstackProvider(render_config)

        done = provider.parse_status("", {"id": "r1", "status": "done", "url": "https://cdn/x.mp4"})
        failed = provider.parse_status("", {"id": "r1", "status": "failed", "error": {"message": "Bad asset"}})

        assert (done.handle, done.status, done.url) == ("r1", JobStatus.DONE, "https://cdn/x.mp4")
        assert failed.error == "Bad asset"

    def test_cancelled_is_failed(self, render_config):
        provider = ShotstackProvider(render_config)
        status = provider.parse_status("r1", {"status": "cancelled"})
        assert status.status == JobStatus.FAILED
        assert status.error == "Unknown render error"

    def test_unknown_label_keeps_polling(self, render_config):
        provider = ShotstackProvider(render_config)
        status = provider.parse_status("r1", {"status": "preprocessing"})
        assert status.status == JobStatus.PROCESSING
        assert not status.is_terminal

    def test_non_object_body(self, render_config):
        provider = ShotstackProvider(render_config)
        with pytest.raises(StatusParseError):
            provider.parse_status("r1", ["done"])


class TestCreatomateProvider:

    def test_wraps_bare_document_as_source(self, render_config):
        provider = CreatomateProvider(render_config)
        payload = provider.submit_payload({"width": 1080, "elements": []})
        assert payload == {"source": {"width": 1080, "elements": []}, "output_format": "mp4"}

    def test_request_shape_passthrough(self, render_config):
        provider = CreatomateProvider(render_config)
        payload = provider.submit_payload(
            {"source": {"elements": []}, "outputFormat": "gif", "webhookUrl": "https://hook"}
        )
        assert payload == {
            "source": {"elements": []},
            "output_format": "gif",
            "webhook_url": "https://hook",
        }

    def test_handle_from_render_list(self, render_config):
        provider = CreatomateProvider(render_config)
        assert provider.parse_handle([{"id": "r-1", "status": "planned"}]) == "r-1"
        assert provider.parse_handle([]) is None

    @pytest.mark.parametrize("label,expected", [
        ("planned", JobStatus.QUEUED),
        ("waiting", JobStatus.QUEUED),
        ("transcribing", JobStatus.PROCESSING),
        ("rendering", JobStatus.PROCESSING),
        ("succeeded", JobStatus.DONE),
        ("failed", JobStatus.FAILED),
    ])
    def test_status_labels(self, render_config, label, expected):
        provider = CreatomateProvider(render_config)
        body = {"id": "r-1", "status": label, "url": "https://cdn/r-1.mp4", "error_message": "x"}
        assert provider.parse_status("r-1", body).status == expected

    def test_failed_error_message(self, render_config):
        provider = CreatomateProvider(render_config)
        status = provider.parse_status("r-1", {"status": "failed", "error_message": "Template missing"})
        assert status.error == "Template missing"

    @pytest.mark.asyncio
    async def test_track_against_creatomate(self, make_client):
        """Bearer auth, /renders endpoints, list submission response."""
        api = FakeRenderAPI(
            submit=(202, [{"id": "r-1", "status": "planned"}]),
            statuses=[
                {"id": "r-1", "status": "rendering"},
                {"id": "r-1", "status": "succeeded", "url": "https://cdn/r-1.mp4"},
            ],
        )
        tracker = RenderJobTracker(client=make_client(api, provider="creatomate"))

        handle = await tracker.submit({"source": {"elements": []}})
        updates = [u async for u in tracker.track(handle, 0, max_attempts=5)]

        assert handle == "r-1"
        assert str(api.submit_requests[0].url) == "https://api.creatomate.com/v1/renders"
        assert api.submit_requests[0].headers["Authorization"] == "Bearer creatomate-key"
        assert str(api.status_requests[0].url) == "https://api.creatomate.com/v1/renders/r-1"
        assert updates[-1].url == "https://cdn/r-1.mp4"


class TestProxyProvider:

    @pytest.mark.asyncio
    async def test_track_against_proxy(self, make_client):
        """The proxy speaks {id} / {status, url} and sends no credential."""
        api = FakeRenderAPI(
            submit=(202, {"id": "abc123"}),
            statuses=[
                {"id": "abc123", "status": "queued"},
                (503, {"message": "Could not reach shotstack"}),
                {"id": "abc123", "status": "done", "url": "https://cdn.example/out.mp4"},
            ],
        )
        tracker = RenderJobTracker(client=make_client(api, provider="proxy"))

        handle = await tracker.submit({"timeline": {}, "output": {}})
        updates = [u async for u in tracker.track(handle, 0, max_attempts=5)]

        assert str(api.submit_requests[0].url) == "http://proxy.test/render"
        assert "x-api-key" not in api.submit_requests[0].headers
        assert str(api.status_requests[0].url) == "http://proxy.test/render-status?id=abc123"
        assert [u.status for u in updates] == [
            JobStatus.QUEUED,
            JobStatus.CHECK_FAILED,
            JobStatus.DONE,
        ]


class TestErrorMessage:

    @pytest.mark.parametrize("body,text,expected", [
        ({"message": "Bad key"}, "", "Bad key"),
        ({"error": "Shotstack API error"}, "", "Shotstack API error"),
        ({"error": {"message": "nested"}}, "", "nested"),
        ({"response": {"message": "wrapped"}}, "", "wrapped"),
        (None, "  plain text  ", "plain text"),
        (None, "", "Unknown error"),
    ])
    def test_error_message(self, body, text, expected):
        assert ShotstackProvider.error_message(body, text) == expected


class TestRenderStatus:

    def test_observed_at_is_timezone_aware(self, render_config):
        status = ShotstackProvider(render_config).parse_status("r1", {"status": "queued"})

        assert status.observed_at.tzinfo is timezone.utc
        assert status.to_dict()["timestamp"].endswith("+00:00")

    def test_caller_handle_wins_over_payload_id(self, render_config):
        provider = ShotstackProvider(render_config)
        status = provider.parse_status("mine", {"response": {"id": "theirs", "status": "queued"}})
        assert status.handle == "mine"
