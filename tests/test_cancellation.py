import threading

import pytest

from requestable.networking.cancellation import CancellationToken, raise_if_cancelled
from requestable.networking.errors import RequestCancelledError


def test_token_starts_active_and_can_be_cancelled():
    token = CancellationToken()

    assert not token.is_cancelled()
    token.raise_if_cancelled()

    token.cancel()

    assert token.is_cancelled()
    with pytest.raises(RequestCancelledError):
        token.raise_if_cancelled()


def test_module_helper_accepts_missing_token():
    raise_if_cancelled(None)


def test_cancel_from_another_thread():
    token = CancellationToken()
    thread = threading.Thread(target=token.cancel)
    thread.start()
    thread.join()

    with pytest.raises(RequestCancelledError):
        raise_if_cancelled(token)
