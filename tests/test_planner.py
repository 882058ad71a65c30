import logging

from voicetracks.capture.fragment import FragmentRecord
from voicetracks.stitch.planner import SILENCE, SPEECH, plan_track


def clip_summary(plan):
    return [(c.kind, c.duration_ms) for c in plan.clips]


def test_gap_between_fragments_becomes_exact_silence(settings):
    fragments = [FragmentRecord(0, "X", 1000), FragmentRecord(3000, "X", 4000)]

    plan = plan_track("X", fragments, 0, settings)

    assert clip_summary(plan) == [(SPEECH, 1000), (SILENCE, 2000), (SPEECH, 1000)]
    assert plan.duration_ms == 4000
    assert [c.filename for c in plan.clips] == ["X-0.wav", "silence-2000.wav", "X-3000.wav"]


def test_late_starter_is_padded_at_the_front_only(settings):
    plan = plan_track("Y", [FragmentRecord(500, "Y", 1500)], 0, settings)

    assert clip_summary(plan) == [(SILENCE, 500), (SPEECH, 1000)]
    assert plan.duration_ms == 1500


def test_adjacent_fragments_get_no_silence(settings):
    fragments = [FragmentRecord(100, "X", 400), FragmentRecord(400, "X", 900)]

    plan = plan_track("X", fragments, 100, settings)

    assert plan.silence_durations == []
    assert clip_summary(plan) == [(SPEECH, 300), (SPEECH, 500)]


def test_silence_inserted_iff_gap_is_positive(settings):
    fragments = [
        FragmentRecord(0, "X", 10),
        FragmentRecord(10, "X", 20),
        FragmentRecord(27, "X", 30),
        FragmentRecord(1030, "X", 1031),
    ]

    plan = plan_track("X", fragments, 0, settings)

    assert plan.silence_durations == [7, 1000]
    assert plan.duration_ms == 1031


def test_overlap_is_clamped_and_logged(settings, caplog):
    fragments = [FragmentRecord(0, "X", 1000), FragmentRecord(800, "X", 1200)]

    with caplog.at_level(logging.WARNING):
        plan = plan_track("X", fragments, 0, settings)

    assert plan.silence_durations == []
    assert all(c.duration_ms >= 0 for c in plan.clips)
    assert "overlaps previous end" in caplog.text


def test_open_fragment_is_skipped(settings, caplog):
    fragments = [FragmentRecord(0, "X", 1000), FragmentRecord(2000, "X")]

    with caplog.at_level(logging.WARNING):
        plan = plan_track("X", fragments, 0, settings)

    assert clip_summary(plan) == [(SPEECH, 1000)]
    assert "never closed" in caplog.text


def test_no_fragments_no_clips(settings):
    assert plan_track("X", [], 0, settings).clips == []


def test_common_end_padding_is_opt_in(settings):
    plan = plan_track("Y", [FragmentRecord(500, "Y", 1500)], 0, settings, pad_to_ms=4000)

    assert clip_summary(plan) == [(SILENCE, 500), (SPEECH, 1000), (SILENCE, 2500)]
    assert plan.duration_ms == 4000


def test_manifest_lines(settings):
    plan = plan_track("Y", [FragmentRecord(500, "Y", 1500)], 0, settings)

    assert plan.manifest_lines() == ["file 'silence-500.wav'", "file 'Y-500.wav'"]


def test_user_names_are_made_filename_safe(settings):
    plan = plan_track("O'Brien/ops", [FragmentRecord(0, "O'Brien/ops", 10)], 0, settings)

    assert plan.clips[0].filename == "O_Brien_ops-0.wav"
    assert "'" not in plan.manifest_lines()[0][len("file '"):-1]
