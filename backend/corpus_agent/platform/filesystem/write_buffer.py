"""In-memory write buffer for transports that upload on close."""

from corpus_agent.platform.filesystem.base import SEEK_CUR, SEEK_END, SEEK_SET


class WriteBuffer:
    """Growable byte buffer with positional writes.

    Writing past the end zero-fills the gap.
    """

    def __init__(self, initial: bytes = b""):
        self._data = bytearray(initial)
        self._position = 0

    def __len__(self) -> int:
        return len(self._data)

    @property
    def position(self) -> int:
        return self._position

    def write(self, data: bytes) -> int:
        """Write at the current position and advance it."""
        written = self.write_at(data, self._position)
        self._position += written
        return written

    def write_at(self, data: bytes, offset: int) -> int:
        """Write at ``offset`` without moving the position."""
        if offset < 0:
            raise ValueError(f"negative offset: {offset}")
        end = offset + len(data)
        if end > len(self._data):
            self._data.extend(b"\x00" * (end - len(self._data)))
        self._data[offset:end] = data
        return len(data)

    def read(self, size: int = -1) -> bytes:
        """Read from the current position and advance it."""
        if size < 0:
            end = len(self._data)
        else:
            end = min(self._position + size, len(self._data))
        chunk = bytes(self._data[self._position:end])
        self._position = max(self._position, end)
        return chunk

    def seek(self, offset: int, whence: int = SEEK_SET) -> int:
        """Move the position and return it."""
        if whence == SEEK_SET:
            position = offset
        elif whence == SEEK_CUR:
            position = self._position + offset
        elif whence == SEEK_END:
            position = len(self._data) + offset
        else:
            raise ValueError(f"invalid whence: {whence}")
        if position < 0:
            raise ValueError(f"negative position: {position}")
        self._position = position
        return position

    def truncate(self, size: int) -> None:
        """Resize the buffer, zero-filling when growing."""
        if size < 0:
            raise ValueError(f"negative size: {size}")
        if size < len(self._data):
            del self._data[size:]
        else:
            self._data.extend(b"\x00" * (size - len(self._data)))

    def getvalue(self) -> bytes:
        """Return the whole content."""
        return bytes(self._data)
