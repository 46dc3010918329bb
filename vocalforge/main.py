import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, File, Form, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response

from vocalforge.audio_io import decode_audio, encode_wav
from vocalforge.config import load_config
from vocalforge.dsp_engine.renderer import Renderer
from vocalforge.engine import analyze_buffer
from vocalforge.errors import DecodeError, InvalidBufferError, RenderError
from vocalforge.models import (
    AdvancedSettingsModel,
    AnalysisResponse,
    RepairSettingsModel,
    SettingsDefaultsResponse,
)
from vocalforge.settings import AdvancedSettings, RepairSettings

logger = logging.getLogger("vocalforge")

config = load_config()

app = FastAPI(title="Vocal Forge DSP Engine")

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(config.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Render-Chain", "X-Render-Loudness-Before", "X-Render-Loudness-After", "X-Render-Peak"],
)

renderer = Renderer(seed=config.render_seed)


def _detail(code: str, exc: Exception) -> Dict[str, Any]:
    return {"error": code, "message": str(exc)}


async def _read_upload(file: UploadFile) -> bytes:
    try:
        return await file.read()
    finally:
        await file.close()


@app.get("/health")
async def health():
    """Static liveness payload; does not touch the DSP stack."""

    return {"status": "ok"}


@app.get("/settings/defaults", response_model=SettingsDefaultsResponse)
async def settings_defaults():
    return SettingsDefaultsResponse(
        repair=RepairSettings().as_dict(),
        advanced=AdvancedSettings().as_dict(),
    )


@app.post("/render")
async def render(
    file: UploadFile = File(...),
    de_noise: Optional[float] = Form(None),
    de_click: Optional[float] = Form(None),
    de_reverb: Optional[float] = Form(None),
    pitch_correction: Optional[float] = Form(None),
    breath_control: Optional[float] = Form(None),
    vocal_fry: Optional[float] = Form(None),
    humanization: Optional[float] = Form(None),
    ai_intensity: Optional[float] = Form(None),
    seed: Optional[int] = Form(None),
):
    """Repair an uploaded take and return it as 16-bit PCM WAV.

    Knobs left out fall back to their defaults; out-of-range values are
    clamped to [0, 1]. The render report travels in ``X-Render-*`` headers.
    """

    settings = RepairSettingsModel(
        de_noise=de_noise,
        de_click=de_click,
        de_reverb=de_reverb,
        pitch_correction=pitch_correction,
        breath_control=breath_control,
        vocal_fry=vocal_fry,
        humanization=humanization,
        ai_intensity=ai_intensity,
    ).to_settings()

    data = await _read_upload(file)
    try:
        buffer = decode_audio(data)
        output, report = await renderer.render(buffer, settings, seed=seed)
    except DecodeError as exc:
        logger.warning("[DSP] Decode failed for %s: %s", file.filename, exc)
        raise HTTPException(status_code=400, detail=_detail("DSP_DECODE_FAILED", exc)) from exc
    except InvalidBufferError as exc:
        logger.warning("[DSP] Invalid buffer for %s: %s", file.filename, exc)
        raise HTTPException(status_code=422, detail=_detail("DSP_INVALID_BUFFER", exc)) from exc
    except RenderError as exc:
        logger.exception("[DSP] Render failed for %s: %s", file.filename, exc)
        raise HTTPException(status_code=500, detail=_detail("DSP_RENDER_FAILED", exc)) from exc

    headers = {
        "X-Render-Chain": ",".join(report.processing_chain),
        "X-Render-Loudness-Before": f"{report.loudness_before:.2f}",
        "X-Render-Loudness-After": f"{report.loudness_after:.2f}",
        "X-Render-Peak": f"{report.peak_after:.2f}",
    }
    return Response(content=encode_wav(output), media_type="audio/wav", headers=headers)


@app.post("/analyze", response_model=AnalysisResponse)
async def analyze(
    file: UploadFile = File(...),
    spectral_resolution: Optional[int] = Form(None),
    hop: Optional[int] = Form(None),
):
    """Window-by-window vocal features and defects for an uploaded take."""

    advanced = AdvancedSettingsModel(spectral_resolution=spectral_resolution).to_settings()
    data = await _read_upload(file)
    try:
        buffer = decode_audio(data)
        return analyze_buffer(
            buffer,
            advanced=advanced,
            hop=hop,
            history_size=config.anomaly_history,
            seed=config.render_seed,
        )
    except DecodeError as exc:
        logger.warning("[DSP] Decode failed for %s: %s", file.filename, exc)
        raise HTTPException(status_code=400, detail=_detail("DSP_DECODE_FAILED", exc)) from exc
    except InvalidBufferError as exc:
        raise HTTPException(status_code=422, detail=_detail("DSP_INVALID_BUFFER", exc)) from exc
