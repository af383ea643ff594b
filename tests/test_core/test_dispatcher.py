import asyncio
import threading

import pytest

from src.models.enums import LoadState
from src.models.model_info import InferenceRequest
from src.utils.exceptions import BusyError, InferenceFailure, LoadFailure, NotReadyError

CAT = "data:image/png;base64,Y2F0"
DOG = "data:image/png;base64,ZG9n"


def _request(image_ref=CAT, task="<MORE_DETAILED_CAPTION>", **kwargs):
    return InferenceRequest(task=task, image_ref=image_ref, **kwargs)


@pytest.fixture
async def ready(manager):
    await manager.ensure_loaded(lambda e: None)
    return manager


async def _wait_until_generating(engine):
    assert await asyncio.to_thread(engine.generating.wait, 5)


async def test_same_image_is_preprocessed_once(engine, ready, dispatcher):
    await dispatcher.submit(_request(CAT))
    await dispatcher.submit(_request(CAT, task="<CAPTION>"))

    assert engine.preprocess_calls == [CAT]
    assert len(engine.generate_calls) == 2


async def test_new_image_replaces_cached_input(engine, ready, dispatcher, cache):
    await dispatcher.submit(_request(CAT))
    await dispatcher.submit(_request(DOG))

    assert engine.preprocess_calls == [CAT, DOG]
    assert cache.cached_ref == DOG


async def test_reset_forces_fresh_preprocessing(engine, ready, dispatcher, cache):
    await dispatcher.submit(_request(CAT))
    cache.invalidate()
    await dispatcher.submit(_request(CAT))

    assert engine.preprocess_calls == [CAT, CAT]


async def test_submit_before_load_never_reaches_engine(engine, manager, dispatcher):
    with pytest.raises(NotReadyError):
        await dispatcher.submit(_request())

    assert engine.generate_calls == []
    assert engine.preprocess_calls == []


async def test_submit_after_failed_load_is_rejected(engine, manager, dispatcher):
    engine.load_error = RuntimeError("boom")
    with pytest.raises(LoadFailure):
        await manager.ensure_loaded(lambda e: None)

    with pytest.raises(NotReadyError, match="failed"):
        await dispatcher.submit(_request())
    assert engine.generate_calls == []


async def test_result_carries_post_processed_output(engine, ready, dispatcher):
    result = await dispatcher.submit(
        _request(language_hint="English", conversation_history=("fluffy",))
    )

    assert result.task == "<MORE_DETAILED_CAPTION>"
    assert result.output["<MORE_DETAILED_CAPTION>"] == (
        f"<MORE_DETAILED_CAPTION>\nfluffy\nLanguage: English|{CAT}"
    )
    assert result.output["size"] == (640, 480)
    assert result.elapsed_millis >= 0


async def test_decoding_is_deterministic(engine, ready, dispatcher):
    await dispatcher.submit(_request())

    _, params = engine.generate_calls[0]
    assert params.do_sample is False
    assert params.num_beams == 1
    assert params.max_new_tokens == 128


async def test_engine_error_is_recoverable(engine, ready, dispatcher):
    engine.generate_error = RuntimeError("CUDA out of memory")

    with pytest.raises(InferenceFailure, match="CUDA out of memory"):
        await dispatcher.submit(_request())

    assert ready.state == LoadState.READY
    assert not dispatcher.is_busy
    result = await dispatcher.submit(_request())
    assert result.output


async def test_run_reports_exactly_one_error(engine, ready, dispatcher):
    engine.generate_error = RuntimeError("bad input")
    events = []

    result = await dispatcher.run(_request(), events.append)

    assert result is None
    assert [e.event for e in events] == ["error"]
    assert "bad input" in events[0].message


async def test_run_reports_complete(engine, ready, dispatcher):
    events = []

    await dispatcher.run(_request(), events.append)

    assert [e.event for e in events] == ["complete"]
    assert events[0].elapsed_millis >= 0


async def test_overlapping_submit_is_rejected_as_busy(engine, ready, dispatcher):
    engine.gate = threading.Event()
    first = asyncio.create_task(dispatcher.submit(_request()))
    await _wait_until_generating(engine)

    with pytest.raises(BusyError):
        await dispatcher.submit(_request(DOG))

    engine.gate.set()
    result = await first
    assert result.output
    assert engine.preprocess_calls == [CAT]


async def test_reset_during_run_applies_to_next_submit(engine, ready, dispatcher, cache):
    engine.gate = threading.Event()
    first = asyncio.create_task(dispatcher.submit(_request(CAT)))
    await _wait_until_generating(engine)

    cache.invalidate()
    engine.gate.set()
    result = await first

    assert result.output["<MORE_DETAILED_CAPTION>"].endswith(CAT)
    assert cache.cached_ref is None

    await dispatcher.submit(_request(CAT))
    assert engine.preprocess_calls == [CAT, CAT]
