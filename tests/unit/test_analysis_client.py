"""Unit tests for the remote analysis client."""

import asyncio

import pytest
from aiohttp import web
from aiohttp import test_utils

from prepcoach.errors import NetworkError, StreamParseError
from prepcoach.models.audio import AudioBlob
from prepcoach.models.transcription import AnalysisRequest
from prepcoach.transcription.analysis_client import (
    CancellationToken,
    RemoteAnalysisClient,
    decode_event_line,
)

ENDPOINT_PATH = "/api/analysis/audio"


async def _read_form(request):
    form = await request.post()
    fields = {}
    for name, value in form.items():
        if isinstance(value, web.FileField):
            fields[name] = {
                "filename": value.filename,
                "content_type": value.content_type,
                "data": value.file.read(),
            }
        else:
            fields[name] = value
    return fields


def run_with_server(handler, scenario):
    """Serve ``handler`` on a local port and run ``scenario(url)`` against it."""
    async def runner():
        app = web.Application()
        app.router.add_post(ENDPOINT_PATH, handler)
        server = test_utils.TestServer(app)
        await server.start_server()
        try:
            url = str(server.make_url(ENDPOINT_PATH))
            return await asyncio.wait_for(scenario(url), timeout=10)
        finally:
            await server.close()

    return asyncio.run(runner())


def sse_handler(lines, received=None):
    async def handler(request):
        fields = await _read_form(request)
        if received is not None:
            received.append(fields)
        response = web.StreamResponse(headers={"Content-Type": "text/event-stream"})
        await response.prepare(request)
        for line in lines:
            await response.write(line.encode("utf-8"))
        await response.write_eof()
        return response

    return handler


async def collect(iterator):
    return [item async for item in iterator]


@pytest.mark.unit
class TestDecodeEventLine:
    """Test cases for decode_event_line."""

    def test_text_event(self):
        event = decode_event_line('data: {"text": "Start with a story"}')

        assert event.text == "Start with a story"
        assert event.transcription is None

    def test_transcription_event(self):
        event = decode_event_line('data: {"transcription": "hello", "text": ""}')

        assert event.transcription == "hello"
        assert event.text == ""

    def test_unknown_fields_are_ignored(self):
        event = decode_event_line('data: {"text": "hi", "model": "x"}')

        assert event.text == "hi"

    @pytest.mark.parametrize("line", ["", "   ", ": keep-alive", "event: message", "data:", "data: [DONE]"])
    def test_lines_without_events(self, line):
        assert decode_event_line(line) is None

    def test_invalid_json_raises(self):
        with pytest.raises(StreamParseError) as exc_info:
            decode_event_line("data: {not json")

        assert exc_info.value.line == "data: {not json"

    def test_wrong_type_raises(self):
        with pytest.raises(StreamParseError):
            decode_event_line('data: {"text": 5}')


@pytest.mark.unit
class TestCancellationToken:
    """Test cases for CancellationToken."""

    def test_cancel(self):
        async def scenario():
            token = CancellationToken()
            assert token.cancelled is False
            token.cancel()
            await asyncio.wait_for(token.wait(), timeout=1)
            return token.cancelled

        assert asyncio.run(scenario()) is True


@pytest.mark.unit
class TestRemoteAnalysisClientStream:
    """Test cases for streaming coaching responses."""

    def test_yields_accumulated_text(self):
        lines = [
            'data: {"text": "Focus"}\n\n',
            'data: {"text": "Focus on growth"}\n\n',
            "data: [DONE]\n\n",
        ]

        async def scenario(url):
            client = RemoteAnalysisClient(url)
            return await collect(client.stream_coaching("What is your greatest weakness?"))

        assert run_with_server(sse_handler(lines), scenario) == ["Focus", "Focus on growth"]

    def test_malformed_line_is_skipped(self):
        lines = [
            'data: {"text": "Hel"}\n',
            "data: {not json\n",
            'data: {"text": "Hello"}\n',
        ]

        async def scenario(url):
            return await collect(RemoteAnalysisClient(url).stream_coaching("Why?"))

        assert run_with_server(sse_handler(lines), scenario) == ["Hel", "Hello"]

    def test_request_form_fields(self):
        received = []

        async def scenario(url):
            client = RemoteAnalysisClient(url, resume_id="resume-1", job_id="job-9")
            return await collect(client.stream_coaching("Tell me about yourself."))

        run_with_server(sse_handler(['data: {"text": "ok"}\n'], received), scenario)

        assert received == [{
            "lastTranscription": "Tell me about yourself.",
            "resumeId": "resume-1",
            "jobId": "job-9",
        }]

    def test_non_200_ends_quietly(self):
        async def handler(request):
            return web.Response(status=500, text="boom")

        async def scenario(url):
            return await collect(RemoteAnalysisClient(url).stream_coaching("Why?"))

        assert run_with_server(handler, scenario) == []

    def test_connection_failure_ends_quietly(self):
        async def scenario():
            client = RemoteAnalysisClient("http://127.0.0.1:1/api/analysis/audio", timeout_seconds=2)
            return await collect(client.stream_coaching("Why?"))

        assert asyncio.run(scenario()) == []

    def test_already_cancelled_token_sends_nothing(self):
        requests = []

        async def handler(request):
            requests.append(request)
            return web.Response(text="")

        async def scenario(url):
            token = CancellationToken()
            token.cancel()
            return await collect(RemoteAnalysisClient(url).stream_coaching("Why?", token))

        assert run_with_server(handler, scenario) == []
        assert requests == []

    def test_abort_mid_stream(self):
        release = asyncio.Event()

        async def handler(request):
            await request.post()
            response = web.StreamResponse(headers={"Content-Type": "text/event-stream"})
            await response.prepare(request)
            await response.write(b'data: {"text": "first"}\n\n')
            try:
                await asyncio.wait_for(release.wait(), timeout=5)
                await response.write(b'data: {"text": "first second"}\n\n')
            except (ConnectionResetError, asyncio.TimeoutError):
                pass
            return response

        async def scenario(url):
            token = CancellationToken()
            received = []
            async for text in RemoteAnalysisClient(url).stream_coaching("Why?", token):
                received.append(text)
                token.cancel()
            release.set()
            return received

        assert run_with_server(handler, scenario) == ["first"]

    def test_dropped_connection_keeps_accumulated_text(self):
        async def handler(request):
            await request.post()
            response = web.StreamResponse(headers={"Content-Type": "text/event-stream"})
            await response.prepare(request)
            await response.write(b'data: {"text": "first"}\n\n')
            request.transport.close()
            return response

        async def scenario(url):
            return await collect(RemoteAnalysisClient(url).stream_coaching("Why?"))

        assert run_with_server(handler, scenario) == ["first"]


@pytest.mark.unit
class TestRemoteAnalysisClientTranscribe:
    """Test cases for transcribing captured audio."""

    blob = AudioBlob(data=b"OggS-data", mime_type="audio/ogg;codecs=opus", chunk_count=3)

    def test_json_response(self):
        received = []

        async def handler(request):
            received.append(await _read_form(request))
            return web.json_response({"transcription": "hello there", "response": ""})

        async def scenario(url):
            return await RemoteAnalysisClient(url).transcribe(self.blob, "previous words")

        result = run_with_server(handler, scenario)

        assert result.transcription == "hello there"
        assert result.response == ""
        fields = received[0]
        assert fields["lastTranscription"] == "previous words"
        assert fields["audio"]["filename"] == "audio.ogg"
        assert fields["audio"]["content_type"].startswith("audio/ogg")
        assert fields["audio"]["data"] == b"OggS-data"

    def test_event_stream_response(self):
        lines = [
            'data: {"transcription": "What is your greatest weakness?"}\n',
            'data: {"text": "Be honest"}\n',
        ]

        async def scenario(url):
            return await RemoteAnalysisClient(url).transcribe(self.blob, "")

        result = run_with_server(sse_handler(lines), scenario)

        assert result.transcription == "What is your greatest weakness?"
        assert result.response == "Be honest"

    def test_error_field_raises(self):
        async def handler(request):
            await request.post()
            return web.json_response({"error": "Failed to process audio"})

        async def scenario(url):
            return await RemoteAnalysisClient(url).transcribe(self.blob, "")

        with pytest.raises(NetworkError, match="Failed to process audio"):
            run_with_server(handler, scenario)

    def test_non_200_raises(self):
        async def handler(request):
            return web.Response(status=502, text="bad gateway")

        async def scenario(url):
            return await RemoteAnalysisClient(url).transcribe(self.blob, "")

        with pytest.raises(NetworkError, match="502"):
            run_with_server(handler, scenario)

    def test_connection_failure_raises(self):
        async def scenario():
            client = RemoteAnalysisClient("http://127.0.0.1:1/api/analysis/audio", timeout_seconds=2)
            return await client.transcribe(self.blob, "")

        with pytest.raises(NetworkError):
            asyncio.run(scenario())

    def test_send_accepts_explicit_request(self):
        async def scenario(url):
            request = AnalysisRequest(last_transcription="Why?", audio=self.blob)
            return await collect(RemoteAnalysisClient(url).send(request))

        assert run_with_server(sse_handler(['data: {"text": "Because"}\n']), scenario) == ["Because"]

    def test_context_ids_override_client_defaults(self):
        received = []

        async def handler(request):
            received.append(await _read_form(request))
            return web.json_response({"transcription": "ok"})

        async def scenario(url):
            client = RemoteAnalysisClient(url, resume_id="resume-1", job_id="job-1")
            return await client.transcribe(self.blob, "", resume_id="resume-2")

        run_with_server(handler, scenario)

        assert received[0]["resumeId"] == "resume-2"
        assert received[0]["jobId"] == "job-1"

    def test_malformed_json_raises(self):
        async def handler(request):
            await request.post()
            return web.Response(text="not json", content_type="application/json")

        async def scenario(url):
            return await RemoteAnalysisClient(url).transcribe(self.blob, "")

        with pytest.raises(NetworkError, match="Malformed analysis response"):
            run_with_server(handler, scenario)

    def test_wrong_field_type_raises(self):
        async def handler(request):
            await request.post()
            return web.json_response({"transcription": 42})

        async def scenario(url):
            return await RemoteAnalysisClient(url).transcribe(self.blob, "")

        with pytest.raises(NetworkError, match="Malformed analysis response"):
            run_with_server(handler, scenario)
