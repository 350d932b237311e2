import asyncio

import httpx
import pytest

from providers import PredictionFailed, ReplicateImageProvider, build_replicate_input


class FakePrediction:
    def __init__(self, statuses, output=None, error=None):
        self.id = "pred-1"
        self._statuses = list(statuses)
        self.status = self._statuses.pop(0)
        self.output = output
        self.error = error
        self.reloads = 0

    def reload(self):
        self.reloads += 1
        if self._statuses:
            self.status = self._statuses.pop(0)


class FakePredictions:
    def __init__(self, prediction=None, create_error=None):
        self.prediction = prediction
        self.create_error = create_error
        self.created = []

    def create(self, model, input):
        self.created.append((model, input))
        if self.create_error:
            raise self.create_error
        return self.prediction


class FakeClient:
    def __init__(self, predictions, run_output=None):
        self.predictions = predictions
        self.run_output = run_output
        self.runs = []

    def run(self, model, input):
        self.runs.append((model, input))
        return self.run_output


def _provider(client, model="google/nano-banana", max_polls=5):
    return ReplicateImageProvider("", model, poll_interval=0.0, max_polls=max_polls, client=client)


def test_payload_shapes():
    images = ["data:image/png;base64,AAAA", "https://cdn.example/b.jpg"]

    nano = build_replicate_input("google/nano-banana", "p", images)
    assert nano["image_input"] == images
    assert nano["aspect_ratio"] == "match_input_image"
    assert build_replicate_input("google/nano-banana", "p", [])["aspect_ratio"] == "1:1"

    assert build_replicate_input("flux-kontext-apps/multi-image-list", "p", images)["input_images"] == images

    two = build_replicate_input("flux-kontext-apps/multi-image-kontext-pro", "p", images)
    assert two["input_image_1"] == images[0] and two["input_image_2"] == images[1]

    assert build_replicate_input("black-forest-labs/flux-kontext-pro", "p", images)["input_image"] == images[0]

    text_only = build_replicate_input("black-forest-labs/flux-schnell", "p", images)
    assert "input_image" not in text_only and text_only["num_outputs"] == 1


def test_polls_until_succeeded():
    prediction = FakePrediction(["starting", "processing", "succeeded"], output="https://cdn.example/x.png")
    client = FakeClient(FakePredictions(prediction))
    output = asyncio.run(_provider(client).generate("p", ["https://cdn.example/in.jpg"]))
    assert output == "https://cdn.example/x.png"
    assert prediction.reloads == 2
    model, payload = client.predictions.created[0]
    assert model == "google/nano-banana"
    assert payload["image_input"] == ["https://cdn.example/in.jpg"]


def test_failed_prediction_raises():
    prediction = FakePrediction(["processing", "failed"], error="NSFW content detected")
    with pytest.raises(PredictionFailed, match="NSFW"):
        asyncio.run(_provider(FakeClient(FakePredictions(prediction))).generate("p", ["x"]))


def test_canceled_and_empty_output_raise():
    canceled = FakePrediction(["canceled"])
    with pytest.raises(PredictionFailed, match="canceled"):
        asyncio.run(_provider(FakeClient(FakePredictions(canceled))).generate("p", ["x"]))
    empty = FakePrediction(["succeeded"], output=None)
    with pytest.raises(PredictionFailed, match="No output"):
        asyncio.run(_provider(FakeClient(FakePredictions(empty))).generate("p", ["x"]))


def test_polling_is_bounded():
    prediction = FakePrediction(["starting"] + ["processing"] * 20)
    with pytest.raises(PredictionFailed, match="after 3 polls"):
        asyncio.run(_provider(FakeClient(FakePredictions(prediction)), max_polls=3).generate("p", ["x"]))
    assert prediction.reloads == 3


def test_falls_back_to_run_for_versioned_models():
    client = FakeClient(
        FakePredictions(create_error=RuntimeError("404 Not Found: model has no default version")),
        run_output=["https://cdn.example/y.png"],
    )
    output = asyncio.run(_provider(client, model="someone/community-model").generate("p", ["x"]))
    assert output == ["https://cdn.example/y.png"]
    assert client.runs[0][0] == "someone/community-model"


def test_other_create_errors_propagate():
    client = FakeClient(FakePredictions(create_error=RuntimeError("rate limited")))
    with pytest.raises(RuntimeError, match="rate limited"):
        asyncio.run(_provider(client).generate("p", ["x"]))
    assert client.runs == []


@pytest.mark.parametrize(
    "status, body, expected",
    [
        (200, '{"username": "me"}', "ok"),
        (403, "Forbidden", "blocked"),
        (503, "<title>Just a moment...</title> cloudflare", "blocked"),
        (401, "Unauthenticated", "unauthorized"),
        (500, "oops", "error"),
    ],
)
def test_probe_classification(status, body, expected):
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(status, text=body)

    async def go():
        provider = ReplicateImageProvider("r8_token", client=FakeClient(FakePredictions()))
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            return await provider.probe(http)

    result = asyncio.run(go())
    assert result.status == expected
    assert seen[0].url.path == "/v1/account"
    assert seen[0].headers["Authorization"] == "Bearer r8_token"


def test_probe_transport_error():
    def handler(request):
        raise httpx.ConnectError("no route", request=request)

    async def go():
        provider = ReplicateImageProvider("t", client=FakeClient(FakePredictions()))
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            return await provider.probe(http)

    assert asyncio.run(go()).status == "error"
