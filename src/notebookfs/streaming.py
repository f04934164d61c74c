"""Streamed uploads with bounded memory.

Bytes are buffered until `part_size` is reached, at which point a
multipart upload is started (once per stream) and a part of exactly
`part_size` bytes is sent. Streams that never reach the threshold are
written with a single put on finish.

The state is an immutable value: every operation returns the state to
pass to the next one. Callers own the state and must not use a state
from two places at once.
"""

from dataclasses import dataclass
from dataclasses import replace

import logging


logger = logging.getLogger(__name__)

DEFAULT_PART_SIZE = 50_000_000


@dataclass(frozen=True)
class WriteStreamState:
    key: str
    part_size: int = DEFAULT_PART_SIZE
    parts: int = 0
    # ETags in part-number order
    etags: tuple = ()
    # Buffered chunks, most recent first
    current_chunks: tuple = ()
    current_size: int = 0
    upload_id: str = None


def init(key, part_size=DEFAULT_PART_SIZE):
    if part_size < 1:
        raise ValueError(f"part_size must be a positive byte count, got {part_size}")
    return WriteStreamState(key=key, part_size=part_size)


def chunk(client, state, data):
    """Buffer data, uploading full parts while the buffer holds part_size.

    The buffer never holds more than part_size bytes when this returns.
    """
    data = bytes(data)
    state = replace(
        state,
        current_chunks=(data,) + state.current_chunks,
        current_size=state.current_size + len(data),
    )
    if state.current_size < state.part_size:
        return state

    started = state.upload_id is None
    if started:
        upload_id = client.create_multipart_upload(state.key)
        logger.info("Started multipart upload for key=%s", state.key)
        state = replace(state, upload_id=upload_id)

    try:
        while state.current_size >= state.part_size:
            state = _upload_part(client, state, state.part_size)
    except BaseException:
        # The caller's state does not know about a session started here,
        # so it could never be halted
        if started:
            _abort_quietly(client, state)
        raise
    return state


def _upload_part(client, state, size):
    buffered = b"".join(reversed(state.current_chunks))
    part, rest = buffered[:size], buffered[size:]
    part_number = state.parts + 1
    etag = client.upload_part(state.key, state.upload_id, part_number, part)
    logger.debug(
        "Uploaded part %d (%d bytes) for key=%s", part_number, len(part), state.key
    )
    return replace(
        state,
        parts=part_number,
        etags=state.etags + (etag,),
        current_chunks=(rest,) if rest else (),
        current_size=len(rest),
    )


def finish(client, state):
    """Commit the stream.

    Without an upload session the buffered content is put in one
    request. Otherwise the remainder is sent as the last part and the
    upload completed; on failure the session is aborted before the
    error propagates.
    """
    if state.upload_id is None:
        content = b"".join(reversed(state.current_chunks))
        client.put_object(state.key, content)
        return

    try:
        if state.current_size > 0:
            state = _upload_part(client, state, state.current_size)
        client.complete_multipart_upload(state.key, state.upload_id, list(state.etags))
    except Exception:
        logger.warning(
            "Aborting multipart upload for key=%s after failed completion",
            state.key,
        )
        _abort_quietly(client, state)
        raise
    logger.info(
        "Completed multipart upload for key=%s with %d parts", state.key, state.parts
    )


def halt(client, state):
    if state.upload_id is not None:
        client.abort_multipart_upload(state.key, state.upload_id)
        logger.info("Aborted multipart upload for key=%s", state.key)


def write_all(client, key, chunks, part_size=DEFAULT_PART_SIZE):
    """Stream every chunk from an iterable to key.

    Any error, whether raised by the iterable or by the backend, halts
    the stream before being re-raised.
    """
    state = init(key, part_size=part_size)
    try:
        for data in chunks:
            state = chunk(client, state, data)
    except BaseException:
        _abort_quietly(client, state)
        raise
    finish(client, state)


def _abort_quietly(client, state):
    try:
        halt(client, state)
    except Exception:
        logger.warning(
            "Failed to abort multipart upload for key=%s", state.key, exc_info=True
        )
