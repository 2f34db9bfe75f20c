#  Copyright (C) 2024 The Android Open Source Project
#
#  Licensed under the Apache License, Version 2.0 (the "License");
#  you may not use this file except in compliance with the License.
#  You may obtain a copy of the License at
#
#       http://www.apache.org/licenses/LICENSE-2.0
#
#  Unless required by applicable law or agreed to in writing, software
#  distributed under the License is distributed on an "AS IS" BASIS,
#  WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
#  See the License for the specific language governing permissions and
#  limitations under the License.

# Lint as: python3
"""Reads packets from a TUN/TAP file descriptor on a background thread."""

from __future__ import annotations

import collections
import datetime
import logging
import os
import select
import threading
import time
from typing import Callable

# How often the reader thread wakes up to check whether it should stop.
_SELECT_TIMEOUT_SEC = 0.1


class TapPacketReader:
    """Buffers every frame read from a file descriptor.

    Frames are read by a daemon thread and kept in arrival order until a
    caller consumes them with `poll`.

    Attributes:
        fd: The file descriptor of the TUN/TAP interface.
        mtu: The maximum number of bytes read for one frame.
    """

    def __init__(self, fd: int, mtu: int):
        self.fd = fd
        self.mtu = mtu
        self._packets = collections.deque()
        self._cond = threading.Condition()
        self._running = threading.Event()
        self._stopping = threading.Event()
        self._thread = None

    @property
    def is_running(self) -> bool:
        return self._running.is_set()

    def start(self, timeout: datetime.timedelta | None = None) -> None:
        """Starts the reader thread.

        Args:
            timeout: How long to wait for the thread to report it is running.
                Does not wait if None.

        Raises:
            RuntimeError: If the reader was already started.
            TimeoutError: If the thread does not start in time.
        """
        if self._thread is not None:
            raise RuntimeError(f'Packet reader on fd {self.fd} already started.')
        self._stopping.clear()
        self._thread = threading.Thread(
            target=self._read_loop,
            name=f'TapPacketReader-{self.fd}',
            daemon=True,
        )
        self._thread.start()
        if timeout is not None and not self._running.wait(
            timeout.total_seconds()
        ):
            raise TimeoutError(
                f'Packet reader on fd {self.fd} did not start in {timeout}.'
            )

    def stop(self) -> None:
        """Stops the reader thread. Buffered packets stay available."""
        if self._thread is None:
            return
        self._stopping.set()
        self._thread.join()
        self._thread = None

    def __enter__(self) -> TapPacketReader:
        self.start()
        return self

    def __exit__(self, *args) -> None:
        self.stop()

    def _read_loop(self) -> None:
        self._running.set()
        logging.debug('Started reading packets from fd %d.', self.fd)
        try:
            while not self._stopping.is_set():
                readable, _, _ = select.select(
                    [self.fd], [], [], _SELECT_TIMEOUT_SEC
                )
                if not readable:
                    continue
                packet = os.read(self.fd, self.mtu)
                if not packet:
                    logging.info('fd %d reached end of file.', self.fd)
                    break
                with self._cond:
                    self._packets.append(packet)
                    self._cond.notify_all()
        except OSError:
            logging.exception('Failed to read packets from fd %d.', self.fd)
        finally:
            self._running.clear()
            logging.debug('Stopped reading packets from fd %d.', self.fd)

    def poll(
        self,
        timeout_ms: int,
        predicate: Callable[[bytes], bool] | None = None,
    ) -> bytes | None:
        """Returns the next packet which satisfies predicate.

        Packets which do not satisfy predicate are dropped.

        Args:
            timeout_ms: How long to wait for a matching packet.
            predicate: The filter. Any packet matches if None.

        Returns:
            The first matching packet, or None if there is none within
            timeout_ms.
        """
        deadline = time.monotonic() + timeout_ms / 1000
        with self._cond:
            while True:
                while self._packets:
                    packet = self._packets.popleft()
                    if predicate is None or predicate(packet):
                        return packet
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return None
                self._cond.wait(remaining)
