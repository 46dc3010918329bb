"""
HTTP surface tests through FastAPI's TestClient.
"""
import io

import numpy as np
import pytest
import soundfile as sf
from fastapi.testclient import TestClient

from vocalforge.audio_io import AudioBuffer, encode_wav
from vocalforge.main import app


@pytest.fixture
def client():
    return TestClient(app)


def _upload(data, name="take.wav"):
    return {"file": (name, data, "audio/wav")}


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_settings_defaults(client):
    body = client.get("/settings/defaults").json()
    assert body["repair"]["de_noise"] == 0.3
    assert body["repair"]["humanization"] == 0.7
    assert body["advanced"]["spectral_resolution"] == 2048


class TestRender:

    def test_returns_wav_of_same_shape(self, client, stereo_buffer):
        resp = client.post("/render", files=_upload(encode_wav(stereo_buffer)), data={"de_reverb": "0.4", "seed": "3"})
        assert resp.status_code == 200
        assert resp.headers["content-type"] == "audio/wav"
        assert resp.headers["x-render-chain"] == "input_gain,noise_gate,click_remover,reverb_reducer,output_gain"
        for key in ("x-render-loudness-before", "x-render-loudness-after", "x-render-peak"):
            assert np.isfinite(float(resp.headers[key]))

        audio, sr = sf.read(io.BytesIO(resp.content), dtype="float32", always_2d=True)
        assert sr == stereo_buffer.sample_rate
        assert audio.shape == (stereo_buffer.frames, 2)

    def test_seeded_renders_are_identical(self, client, wav_bytes):
        a = client.post("/render", files=_upload(wav_bytes), data={"seed": "5"})
        b = client.post("/render", files=_upload(wav_bytes), data={"seed": "5"})
        assert a.content == b.content

    def test_out_of_range_knobs_are_clamped(self, client, wav_bytes):
        resp = client.post("/render", files=_upload(wav_bytes), data={"de_noise": "7", "de_click": "-3"})
        assert resp.status_code == 200

    def test_garbage_upload_is_400(self, client):
        resp = client.post("/render", files=_upload(b"this is not audio"))
        assert resp.status_code == 400
        assert resp.json()["detail"]["error"] == "DSP_DECODE_FAILED"

    def test_empty_take_is_422(self, client, sr):
        empty = encode_wav(AudioBuffer(samples=np.zeros((1, 0), dtype=np.float32), sample_rate=sr))
        resp = client.post("/render", files=_upload(empty))
        assert resp.status_code == 422
        assert resp.json()["detail"]["error"] == "DSP_INVALID_BUFFER"

    def test_negative_seed_is_typed_500(self, client, wav_bytes):
        resp = client.post("/render", files=_upload(wav_bytes), data={"seed": "-1"})
        assert resp.status_code == 500
        assert resp.json()["detail"]["error"] == "DSP_RENDER_FAILED"


class TestAnalyze:

    def test_window_report(self, client, wav_bytes, mono_buffer):
        resp = client.post("/analyze", files=_upload(wav_bytes), data={"spectral_resolution": "500", "hop": "400"})
        assert resp.status_code == 200
        body = resp.json()
        assert body["sample_rate"] == mono_buffer.sample_rate
        assert body["channels"] == 1
        assert body["fft_size"] == 512
        assert len(body["windows"]) == int(np.ceil(mono_buffer.frames / 400))
        assert body["windows"][-1]["position_s"] == pytest.approx(mono_buffer.duration)
        assert set(body["windows"][0]["vocal_characteristics"]) >= {"fundamental_frequency_hz", "presence", "air"}
        assert body["click_count"] >= 0

    def test_garbage_upload_is_400(self, client):
        resp = client.post("/analyze", files=_upload(b"RIFFjunk"))
        assert resp.status_code == 400
