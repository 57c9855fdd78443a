import hashlib
import json
import time

import pytest

from ceremony.config import CeremonyConfig
from ceremony.constants import AuxiliaryStep, VerificationTarget
from ceremony.coordinator import ContributionCoordinator, VerificationStatus
from ceremony.entropy import SecretMode
from ceremony.errors import AuxiliaryFailure, EngineFailure, InvalidEntropy, InvalidTranscript
from ceremony.tests.engines import MinimalEngine, RecordingEngine

IDENTITY = "eth|0x000000000000000000000000000000000000dead"


def _coord(engine, metrics, **cfg):
    return ContributionCoordinator(engine, CeremonyConfig(**cfg), metrics=metrics)


def _sha(v: str) -> str:
    return hashlib.sha256(v.encode("utf-8")).hexdigest()


@pytest.mark.asyncio
async def test_end_to_end_single_secret(metrics, transcript_text):
    engine = RecordingEngine('{"x":2}')
    report = await _coord(engine, metrics).run_contribution("seed-1", IDENTITY, transcript_text)

    assert report.succeeded
    assert report.transcript == '{"x":2}'
    assert report.metadata == {}
    assert report.duration_s > 0
    assert report.verifications == ()
    assert report.auxiliary_failures == ()
    assert report.public_keys is None
    assert engine.calls == [("contribute", '{"x":1}', IDENTITY, _sha("seed-1"))]


@pytest.mark.asyncio
async def test_four_slot_entropy_uses_multi_secret_convention(metrics, transcript_text):
    engine = RecordingEngine()
    report = await _coord(engine, metrics).run_contribution(["a", "b", "c", "d"], IDENTITY, transcript_text)

    (_, _, _, secrets), = engine.calls
    assert secrets == tuple("0x" + _sha(v) for v in "abcd")
    assert report.mode is SecretMode.MULTI
    assert report.secret_count == 4


@pytest.mark.asyncio
async def test_single_entropy_uses_single_secret_convention(metrics, transcript_text):
    engine = RecordingEngine()
    report = await _coord(engine, metrics).run_contribution("abc", IDENTITY, transcript_text)

    (_, _, _, secret), = engine.calls
    assert secret == "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
    assert report.mode is SecretMode.SINGLE
    assert report.secret_count == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("doc", [None, "", "not json", "17"])
async def test_invalid_transcript_never_reaches_engine(metrics, registry, doc):
    engine = RecordingEngine()
    coord = _coord(engine, metrics, verify_pre=True, derive_public_keys=True)
    with pytest.raises(InvalidTranscript):
        await coord.run_contribution("seed-1", IDENTITY, doc)
    assert engine.calls == []
    assert registry.get_sample_value(
        "pot_ceremony_contributions_total", {"outcome": "invalid_transcript"}
    ) == 1.0


@pytest.mark.asyncio
@pytest.mark.parametrize("entropy", [None, 12, ["a", "b"]])
async def test_invalid_entropy_never_reaches_engine(metrics, transcript_text, entropy):
    engine = RecordingEngine()
    with pytest.raises(InvalidEntropy):
        await _coord(engine, metrics, verify_pre=True).run_contribution(entropy, IDENTITY, transcript_text)
    assert engine.calls == []


@pytest.mark.asyncio
async def test_structured_result_is_normalized(metrics, transcript_text):
    engine = RecordingEngine({"contribution": '{"x":2}', "proofs": ["p0", "p1"]})
    report = await _coord(engine, metrics).run_contribution("seed-1", IDENTITY, transcript_text)
    assert report.transcript == '{"x":2}'
    assert report.metadata == {"proofs": ["p0", "p1"]}


@pytest.mark.asyncio
async def test_decoded_transcript_document_is_accepted(metrics):
    engine = RecordingEngine()
    await _coord(engine, metrics).run_contribution("seed-1", IDENTITY, {"x": 1})
    assert engine.calls[0][1] == '{"x":1}'


@pytest.mark.asyncio
async def test_verification_order_pre_contribute_post(metrics, transcript_text):
    engine = RecordingEngine('{"x":2}')
    report = await _coord(engine, metrics, verify_pre=True, verify_post=True).run_contribution(
        "seed-1", IDENTITY, transcript_text
    )

    assert engine.names() == ["check_subgroup", "contribute", "check_subgroup"]
    assert engine.calls[0] == ("check_subgroup", '{"x":1}')
    assert engine.calls[2] == ("check_subgroup", '{"x":2}')
    assert [(v.target, v.status) for v in report.verifications] == [
        ("pre", VerificationStatus.PASSED),
        ("post", VerificationStatus.PASSED),
    ]


@pytest.mark.asyncio
async def test_only_post_verification(metrics, transcript_text):
    engine = RecordingEngine()
    report = await _coord(engine, metrics, verify_post=True).run_contribution("seed-1", IDENTITY, transcript_text)
    assert engine.names() == ["contribute", "check_subgroup"]
    assert report.verification("pre") is None
    assert report.verification("post").ok


@pytest.mark.asyncio
async def test_failed_subgroup_check_is_advisory(metrics, registry, transcript_text):
    engine = RecordingEngine(subgroup=False)
    report = await _coord(engine, metrics, verify_post=True).run_contribution("seed-1", IDENTITY, transcript_text)

    assert report.succeeded
    assert report.verification("post").status is VerificationStatus.FAILED
    assert report.auxiliary_failures == ()
    assert registry.get_sample_value(
        "pot_ceremony_verifications_total", {"target": "post", "outcome": "failed"}
    ) == 1.0


@pytest.mark.asyncio
async def test_erroring_subgroup_check_does_not_mask_success(metrics, registry, transcript_text):
    boom = RuntimeError("pairing backend crashed")
    engine = RecordingEngine('{"x":2}', subgroup=boom)
    report = await _coord(engine, metrics, verify_post=True).run_contribution("seed-1", IDENTITY, transcript_text)

    assert report.succeeded
    assert report.transcript == '{"x":2}'
    outcome = report.verification("post")
    assert outcome.status is VerificationStatus.UNAVAILABLE
    assert "pairing backend crashed" in outcome.error
    assert report.auxiliary_failures == (AuxiliaryFailure("verify_post", boom),)
    assert registry.get_sample_value("pot_ceremony_contributions_total", {"outcome": "ok"}) == 1.0
    assert registry.get_sample_value("pot_ceremony_auxiliary_failures_total", {"step": "verify_post"}) == 1.0


@pytest.mark.asyncio
async def test_public_keys_are_derived_before_contribute(metrics, transcript_text):
    engine = RecordingEngine(public_keys=["g2-a", "g2-b", "g2-c", "g2-d"])
    report = await _coord(engine, metrics, derive_public_keys=True).run_contribution(
        ["a", "b", "c", "d"], IDENTITY, transcript_text
    )

    assert engine.names() == ["derive_public_keys", "contribute"]
    assert engine.calls[0][1] == engine.calls[1][3]
    assert report.public_keys == ["g2-a", "g2-b", "g2-c", "g2-d"]


@pytest.mark.asyncio
async def test_public_key_failure_is_auxiliary(metrics, transcript_text):
    engine = RecordingEngine(public_keys=ValueError("bad scalar"))
    report = await _coord(engine, metrics, derive_public_keys=True).run_contribution("seed-1", IDENTITY, transcript_text)

    assert report.succeeded
    assert report.public_keys is None
    assert [a.step for a in report.auxiliary_failures] == ["public_keys"]
    assert engine.count("contribute") == 1


@pytest.mark.asyncio
async def test_engine_without_public_key_capability(metrics, transcript_text):
    engine = MinimalEngine()
    report = await _coord(engine, metrics, derive_public_keys=True).run_contribution("seed-1", IDENTITY, transcript_text)
    assert isinstance(report.auxiliary_failures[0].cause, NotImplementedError)
    assert engine.contributions == 1


@pytest.mark.asyncio
async def test_contribute_failure_is_fatal_and_not_retried(metrics, registry, transcript_text):
    boom = RuntimeError("engine exploded")
    engine = RecordingEngine(boom)
    with pytest.raises(EngineFailure) as ei:
        await _coord(engine, metrics, verify_post=True).run_contribution("seed-1", IDENTITY, transcript_text)

    assert ei.value.phase == "contribute"
    assert ei.value.cause is boom
    assert not ei.value.timed_out
    assert engine.names() == ["contribute"]
    assert registry.get_sample_value(
        "pot_ceremony_contributions_total", {"outcome": "engine_failure"}
    ) == 1.0


@pytest.mark.asyncio
async def test_contribute_timeout(metrics, registry, transcript_text):
    engine = RecordingEngine(delay=0.5)
    with pytest.raises(EngineFailure) as ei:
        await _coord(engine, metrics, engine_timeout_s=0.05).run_contribution("seed-1", IDENTITY, transcript_text)

    assert ei.value.timed_out
    assert engine.count("contribute") == 1
    assert registry.get_sample_value("pot_ceremony_contributions_total", {"outcome": "timeout"}) == 1.0


@pytest.mark.asyncio
async def test_unrecognized_engine_result(metrics, transcript_text):
    engine = RecordingEngine({"proofs": []})
    with pytest.raises(EngineFailure) as ei:
        await _coord(engine, metrics, verify_post=True).run_contribution("seed-1", IDENTITY, transcript_text)
    assert ei.value.phase == "decode"
    assert engine.names() == ["contribute"]


@pytest.mark.asyncio
async def test_report_never_carries_secrets(metrics, transcript_text):
    engine = RecordingEngine()
    report = await _coord(engine, metrics, verify_post=True).run_contribution(
        ["a", "b", "c", "d"], IDENTITY, transcript_text
    )
    dumped = json.dumps(report.to_dict(include_transcript=True)) + repr(report)
    for v in "abcd":
        assert _sha(v) not in dumped


@pytest.mark.asyncio
async def test_same_entropy_same_output(metrics, transcript_text):
    first, second = RecordingEngine(), RecordingEngine()
    await _coord(first, metrics).run_contribution("seed-1", IDENTITY, transcript_text)
    await _coord(second, metrics).run_contribution("seed-1", IDENTITY, transcript_text)
    assert first.calls == second.calls


def test_sync_entry_point(metrics, transcript_text):
    engine = RecordingEngine('{"x":2}')
    report = _coord(engine, metrics).run_contribution_sync("seed-1", IDENTITY, transcript_text)
    assert report.transcript == '{"x":2}'
    assert report.identity == IDENTITY


def test_invalid_config_is_rejected(metrics):
    with pytest.raises(ValueError):
        _coord(RecordingEngine(), metrics, engine_timeout_s=0)


def test_sync_timeout_does_not_wait_for_the_engine(metrics, registry, transcript_text):
    engine = RecordingEngine(delay=3.0)
    start = time.perf_counter()
    with pytest.raises(EngineFailure) as ei:
        _coord(engine, metrics, engine_timeout_s=0.1).run_contribution_sync("seed-1", IDENTITY, transcript_text)

    assert ei.value.timed_out
    assert time.perf_counter() - start < 1.5
    assert registry.get_sample_value("pot_ceremony_contributions_total", {"outcome": "timeout"}) == 1.0


@pytest.mark.asyncio
async def test_report_tags_use_the_fixed_vocabularies(metrics, transcript_text):
    engine = RecordingEngine(subgroup=RuntimeError("pairing failed"), public_keys=RuntimeError("nope"))
    report = await _coord(engine, metrics, verify_pre=True, derive_public_keys=True).run_contribution(
        "seed-1", IDENTITY, transcript_text
    )
    assert report.verifications[0].target is VerificationTarget.PRE
    assert report.verification(VerificationTarget.PRE) is report.verification("pre")
    assert [a.step for a in report.auxiliary_failures] == [AuxiliaryStep.PUBLIC_KEYS, AuxiliaryStep.VERIFY_PRE]
    assert report.to_dict()["auxiliary_failures"][1]["step"] == "verify_pre"


def test_auxiliary_failure_rejects_unknown_steps():
    assert AuxiliaryFailure("verify_post").step is AuxiliaryStep.VERIFY_POST
    with pytest.raises(ValueError):
        AuxiliaryFailure("verify_everything")
