"""Unit tests for the generation client and local image store."""

import json
import subprocess

import httpx
import pytest

from plan_engine.errors import GenerationServiceError, ImageResolutionError
from plan_engine.generation import (
    GenerationClient,
    build_batch_prompt,
    extract_recipes,
    parse_partial_json,
    strip_fences,
)
from plan_engine.image_store import LocalImageStore, slugify
from plan_engine.models import GenerationPreferences


class TestPrompt:
    def test_defaults(self):
        prompt = build_batch_prompt(3)
        assert "Generate a batch of 3" in prompt
        assert "No specific requirements" in prompt

    def test_preferences(self):
        prefs = GenerationPreferences(
            meal_types=("breakfast",),
            dietary_restrictions=("vegan",),
            max_calories=600,
            min_protein=20,
        )
        prompt = build_batch_prompt(2, prefs)
        assert "Meal types: breakfast" in prompt
        assert "Dietary restrictions: vegan" in prompt
        assert "Maximum calories per recipe: 600" in prompt
        assert "at least 20g protein" in prompt


class TestJsonParsing:
    def test_strip_fences(self):
        assert strip_fences('```json\n{"a": 1}\n```') == '{"a": 1}'
        assert strip_fences('{"a": 1}') == '{"a": 1}'

    def test_valid_json(self):
        assert parse_partial_json('{"recipes": []}') == {"recipes": []}

    def test_truncated_response_is_salvaged(self):
        text = '{"recipes": [{"name": "A"}, {"name": "B"}, {"name": "C", "ingr'
        assert extract_recipes(parse_partial_json(text)) == [{"name": "A"}, {"name": "B"}]

    def test_unrepairable(self):
        with pytest.raises(GenerationServiceError):
            parse_partial_json("no json here")

    def test_bare_list(self):
        assert extract_recipes([{"name": "A"}, "junk"]) == [{"name": "A"}]


class TestGenerateBatch:
    def test_calls_cli(self, monkeypatch):
        payload = {"recipes": [{"name": "A"}, {"name": "B"}]}

        def fake_run(cmd, **kwargs):
            assert cmd[:3] == ["claude", "--model", "sonnet"]
            assert "Generate a batch of 2" in kwargs["input"]
            return subprocess.CompletedProcess(cmd, 0, stdout=json.dumps(payload), stderr="")

        monkeypatch.setattr(subprocess, "run", fake_run)
        client = GenerationClient(http_client=httpx.Client())
        assert client.generate_batch(2) == payload["recipes"]

    def test_cli_failure(self, monkeypatch):
        monkeypatch.setattr(
            subprocess,
            "run",
            lambda cmd, **kw: subprocess.CompletedProcess(cmd, 1, stdout="", stderr="boom"),
        )
        with pytest.raises(GenerationServiceError, match="status 1"):
            GenerationClient(http_client=httpx.Client()).generate_batch(1)

    def test_cli_timeout(self, monkeypatch):
        def fake_run(cmd, **kwargs):
            raise subprocess.TimeoutExpired(cmd, kwargs["timeout"])

        monkeypatch.setattr(subprocess, "run", fake_run)
        with pytest.raises(GenerationServiceError, match="timed out"):
            GenerationClient(http_client=httpx.Client()).generate_batch(1)


class TestGenerateImage:
    def _client(self, handler, api_key="sk-test"):
        return GenerationClient(
            api_key=api_key,
            image_api_base_url="https://images.test/v1",
            http_client=httpx.Client(transport=httpx.MockTransport(handler)),
        )

    def test_returns_temporary_url(self, make_candidate):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers["authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"data": [{"url": "https://tmp/img.png"}]})

        client = self._client(handler)
        assert client.generate_image(make_candidate("Tacos")) == "https://tmp/img.png"
        assert seen["auth"] == "Bearer sk-test"
        assert '"Tacos"' in seen["body"]["prompt"]

    def test_missing_url(self, make_candidate):
        client = self._client(lambda request: httpx.Response(200, json={"data": []}))
        with pytest.raises(ImageResolutionError, match="temporary URL"):
            client.generate_image(make_candidate("Tacos"))

    def test_http_error(self, make_candidate):
        client = self._client(lambda request: httpx.Response(500))
        with pytest.raises(ImageResolutionError, match="Image request failed"):
            client.generate_image(make_candidate("Tacos"))

    def test_no_api_key(self, make_candidate):
        client = self._client(lambda request: httpx.Response(200), api_key=None)
        with pytest.raises(ImageResolutionError, match="No API key"):
            client.generate_image(make_candidate("Tacos"))


class TestLocalImageStore:
    def test_upload_writes_file(self, tmp_path):
        transport = httpx.MockTransport(
            lambda request: httpx.Response(
                200, content=b"jpegdata", headers={"content-type": "image/jpeg"}
            )
        )
        store = LocalImageStore(
            tmp_path, base_url="https://cdn.test/img/", http_client=httpx.Client(transport=transport)
        )
        url = store.upload("https://tmp/abc", "Lemon Chicken")
        filename = url.rsplit("/", 1)[1]
        assert url.startswith("https://cdn.test/img/lemon-chicken-")
        assert filename.endswith(".jpg")
        assert (tmp_path / filename).read_bytes() == b"jpegdata"

    def test_file_uri_without_base_url(self, tmp_path):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, content=b"x"))
        store = LocalImageStore(tmp_path, http_client=httpx.Client(transport=transport))
        assert store.upload("https://tmp/abc", "Soup").startswith("file://")

    def test_download_failure(self, tmp_path):
        transport = httpx.MockTransport(lambda request: httpx.Response(404))
        store = LocalImageStore(tmp_path, http_client=httpx.Client(transport=transport))
        with pytest.raises(ImageResolutionError, match="Soup"):
            store.upload("https://tmp/abc", "Soup")

    def test_slugify(self):
        assert slugify("Chicken & Rice!") == "chicken-rice"
        assert slugify("!!!") == "image"
