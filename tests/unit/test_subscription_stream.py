import pytest

from core.utils.exceptions import SubscriptionEncodingError
from services.ticker.models import MAX_INSTRUMENT_TOKEN, Mode
from services.ticker.stream import SubscriptionStream


def test_empty_ledger_is_immediately_exhausted():
    stream = SubscriptionStream({})
    assert stream.exhausted
    assert list(stream) == []


def test_one_message_per_mode_in_insertion_order():
    stream = SubscriptionStream({Mode.LTP: [256265], Mode.FULL: [408065, 884737]})
    assert list(stream) == [
        '{"a":"mode","v":["ltp",[256265]]}',
        '{"a":"mode","v":["full",[408065,884737]]}',
    ]
    assert stream.exhausted
    assert stream.cursor == 2


def test_empty_bucket_is_skipped():
    stream = SubscriptionStream({Mode.FULL: [], Mode.QUOTE: [5633]})
    assert list(stream) == ['{"a":"mode","v":["quote",[5633]]}']


def test_all_buckets_empty_yields_nothing():
    assert list(SubscriptionStream({Mode.FULL: [], Mode.LTP: []})) == []


def test_exhausted_stream_stays_exhausted():
    stream = SubscriptionStream({Mode.FULL: [1]})
    assert next(stream) == '{"a":"mode","v":["full",[1]]}'
    with pytest.raises(StopIteration):
        next(stream)
    with pytest.raises(StopIteration):
        next(stream)


def test_mapping_is_copied_at_construction():
    subscriptions = {Mode.FULL: [1]}
    stream = SubscriptionStream(subscriptions)
    subscriptions[Mode.FULL].append(2)
    subscriptions[Mode.LTP] = [3]

    assert stream.keys == [Mode.FULL]
    assert list(stream) == ['{"a":"mode","v":["full",[1]]}']


def test_unencodable_bucket_fails_alone():
    stream = SubscriptionStream({
        Mode.FULL: [MAX_INSTRUMENT_TOKEN + 1],
        Mode.LTP: [256265],
    })

    with pytest.raises(SubscriptionEncodingError) as excinfo:
        next(stream)
    assert excinfo.value.mode == "full"
    assert excinfo.value.retryable is False

    assert next(stream) == '{"a":"mode","v":["ltp",[256265]]}'
    assert stream.exhausted


@pytest.mark.asyncio
async def test_async_iteration_skips_empty_buckets():
    stream = SubscriptionStream({Mode.FULL: [], Mode.QUOTE: [], Mode.LTP: [1]})
    messages = [message async for message in stream]
    assert messages == ['{"a":"mode","v":["ltp",[1]]}']
    assert stream.cursor == 3


@pytest.mark.asyncio
async def test_async_iteration_of_empty_ledger_ends():
    messages = [message async for message in SubscriptionStream({})]
    assert messages == []


@pytest.mark.asyncio
async def test_async_encoding_error_leaves_cursor_advanced():
    stream = SubscriptionStream({Mode.QUOTE: [-1], Mode.FULL: [1]})
    with pytest.raises(SubscriptionEncodingError):
        await stream.__anext__()
    assert stream.cursor == 1
    assert await stream.__anext__() == '{"a":"mode","v":["full",[1]]}'
    with pytest.raises(StopAsyncIteration):
        await stream.__anext__()
