"""
Turns upstream session info into display-ready per-face results.

Pure functions, no I/O.
"""
from collections import Counter
from typing import Dict, List, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from core.errors import UpstreamError
from core.schemas import (
    AnalysisResult,
    EnsembleProbability,
    FaceInfo,
    ModelProbability,
    SessionInfo,
)


NEUTRAL_PROBABILITY = 0.5

# (exclusive lower bound, verdict), checked top to bottom
VERDICT_THRESHOLDS = (
    (0.95, "Likely Real"),
    (0.7, "Probably Real"),
    (0.3, "Uncertain"),
    (0.05, "Probably Deepfake"),
)
LOWEST_VERDICT = "Likely Deepfake"


def parse_session_info(session: Union[SessionInfo, dict]) -> SessionInfo:
    """Accept either a parsed SessionInfo or the raw upstream JSON."""
    if isinstance(session, SessionInfo):
        return session
    try:
        return SessionInfo.model_validate(session)
    except PydanticValidationError as e:
        raise UpstreamError("Malformed session payload", details=f"{e.error_count()} invalid field(s)")


def compute_verdict(ensemble_real: float) -> str:
    """Map an ensemble real-probability to a verdict label."""
    for bound, verdict in VERDICT_THRESHOLDS:
        if ensemble_real > bound:
            return verdict
    return LOWEST_VERDICT


def ensemble_real_probability(face: FaceInfo) -> float:
    if face.ansamble is not None:
        return face.ansamble
    if face.realProbability is not None:
        return face.realProbability
    return NEUTRAL_PROBABILITY


def model_probabilities(face: FaceInfo) -> List[ModelProbability]:
    """
    Per-model breakdown for one face.

    Ten-model faces always produce ten entries in model order, missing
    scores replaced with the neutral value so positions stay stable.
    A face without model score fields but with a generic metrics map gets one
    entry per metric, keyed by display name. A face carrying neither is
    still a ten-model face whose scores are all missing.
    """
    if face.metrics and not face.has_model_scores():
        return [
            ModelProbability(
                model=metric.name,
                realProbability=metric.probability,
                fakeProbability=1 - metric.probability,
            )
            for metric in face.metrics.values()
        ]

    probabilities = []
    for number, score in enumerate(face.model_scores(), start=1):
        real = NEUTRAL_PROBABILITY if score is None else score
        probabilities.append(ModelProbability(
            model=f"Model {number}",
            realProbability=real,
            fakeProbability=1 - real,
        ))
    return probabilities


def format_face(face: FaceInfo, position: int) -> AnalysisResult:
    """Format the face found at 0-based `position` of the session's face list."""
    real = ensemble_real_probability(face)
    verdict = face.verdict or compute_verdict(real)
    return AnalysisResult(
        faceIndex=position + 1,
        facePath=face.face_path or "",
        ensembleProbability=EnsembleProbability(real=real, fake=1 - real),
        modelProbabilities=model_probabilities(face),
        verdict=verdict,
    )


def format_analysis_results(session: Union[SessionInfo, dict]) -> List[AnalysisResult]:
    """One AnalysisResult per face, in upstream order."""
    info = parse_session_info(session)
    return [format_face(face, position) for position, face in enumerate(info.faces)]


def summarize_results(results: List[AnalysisResult]) -> Dict[str, object]:
    """Verdict counts and the face with the lowest real-probability."""
    counts = Counter(result.verdict for result in results)
    most_suspicious: Optional[AnalysisResult] = None
    if results:
        most_suspicious = min(results, key=lambda r: r.ensembleProbability.real)
    return {
        "total_faces": len(results),
        "verdicts": dict(counts),
        "most_suspicious_face": most_suspicious.faceIndex if most_suspicious else None,
        "lowest_real_probability": most_suspicious.ensembleProbability.real if most_suspicious else None,
    }
