"""Streaming multipart reader that writes file parts straight into storage.

Nothing is spooled: every chunk read from the request goes through the
parser into the part's file in the upload directory, and the size caps are
checked as the bytes arrive.
"""
from typing import AsyncIterator, Dict, List, Mapping, Optional, Tuple

from python_multipart.exceptions import MultipartParseError
from python_multipart.multipart import MultipartParser, parse_options_header

from upload_gateway import config
from upload_gateway.errors import (
    InternalError,
    InvalidMediaType,
    InvalidMultipart,
    PayloadTooLarge,
    TooManyFiles,
    UnexpectedField,
)
from upload_gateway.logger_config import setup_logger
from upload_gateway.services.storage_manager import PartWriter, StorageManager, StoredFile

logger = setup_logger()


def _decode(value: bytes) -> str:
    try:
        return value.decode("utf-8")
    except UnicodeDecodeError:
        return value.decode("latin-1")


class MultipartUpload:
    """Reads one ``multipart/form-data`` request body.

    Parts with a filename in the ``file`` and ``files`` fields are stored;
    plain form fields are read and dropped. Any rejection removes every file
    already written for the request, so a request is stored whole or not at
    all.
    """

    def __init__(self, storage_manager: StorageManager, headers: Mapping[str, str]):
        self.storage_manager = storage_manager
        self.headers = headers
        self.max_request_size = (
            storage_manager.max_file_size * sum(config.UPLOAD_FIELDS.values())
            + config.MULTIPART_OVERHEAD
        )

        self._stored: Dict[str, List[StoredFile]] = {name: [] for name in config.UPLOAD_FIELDS}
        self._writer: Optional[PartWriter] = None
        self._field: Optional[str] = None
        self._messages: List[Tuple[str, object]] = []
        self._part_headers: Dict[bytes, bytes] = {}
        self._header_field = b""
        self._header_value = b""
        self._ended = False

    # Parser callbacks run synchronously inside ``parser.write``; they only
    # queue events, which ``_drain`` then handles with async file I/O.

    def on_part_begin(self):
        self._part_headers = {}

    def on_header_field(self, data: bytes, start: int, end: int):
        self._header_field += data[start:end]

    def on_header_value(self, data: bytes, start: int, end: int):
        self._header_value += data[start:end]

    def on_header_end(self):
        self._part_headers[self._header_field.lower()] = self._header_value
        self._header_field = b""
        self._header_value = b""

    def on_headers_finished(self):
        self._messages.append(("headers", self._part_headers))

    def on_part_data(self, data: bytes, start: int, end: int):
        self._messages.append(("data", data[start:end]))

    def on_part_end(self):
        self._messages.append(("end", None))

    def on_end(self):
        self._ended = True

    async def parse(self, stream: AsyncIterator[bytes]) -> List[StoredFile]:
        """Consume ``stream`` and return the stored files, ``file`` field first."""
        content_type, params = parse_options_header(self.headers.get("content-type", ""))
        if content_type != b"multipart/form-data":
            return []
        boundary = params.get(b"boundary")
        if not boundary:
            raise InvalidMultipart("Missing multipart boundary")

        content_length = self.headers.get("content-length", "")
        if content_length.isdigit() and int(content_length) > self.max_request_size:
            raise PayloadTooLarge(f"Request too large (max {self.max_request_size} bytes)")

        parser = MultipartParser(boundary, {
            "on_part_begin": self.on_part_begin,
            "on_part_data": self.on_part_data,
            "on_part_end": self.on_part_end,
            "on_header_field": self.on_header_field,
            "on_header_value": self.on_header_value,
            "on_header_end": self.on_header_end,
            "on_headers_finished": self.on_headers_finished,
            "on_end": self.on_end,
        })

        received = 0
        try:
            async for chunk in stream:
                received += len(chunk)
                if received > self.max_request_size:
                    raise PayloadTooLarge(f"Request too large (max {self.max_request_size} bytes)")
                parser.write(chunk)
                await self._drain()
            parser.finalize()
            await self._drain()
            if not self._ended:
                raise InvalidMultipart("Unexpected end of multipart data")
        except MultipartParseError as e:
            logger.warning(f"Malformed multipart body: {str(e)}")
            await self._abort()
            raise InvalidMultipart()
        except OSError as e:
            logger.error(f"Error storing upload: {str(e)}", exc_info=True)
            await self._abort()
            raise InternalError(f"Error storing upload: {str(e)}")
        except Exception:
            await self._abort()
            raise

        return [item for name in config.UPLOAD_FIELDS for item in self._stored[name]]

    async def _drain(self):
        messages, self._messages = self._messages, []
        for kind, payload in messages:
            if kind == "headers":
                await self._start_part(payload)
            elif kind == "data":
                if self._writer is not None:
                    await self._writer.write(payload)
            elif kind == "end":
                if self._writer is not None:
                    self._stored[self._field].append(await self._writer.finish())
                    self._writer = None

    async def _start_part(self, headers: Dict[bytes, bytes]):
        _, options = parse_options_header(headers.get(b"content-disposition", b""))
        if b"filename" not in options:
            # Plain form field
            return

        field = _decode(options.get(b"name", b""))
        if field not in config.UPLOAD_FIELDS:
            raise UnexpectedField(f"Unexpected field {field!r}")
        limit = config.UPLOAD_FIELDS[field]
        if len(self._stored[field]) >= limit:
            raise TooManyFiles(f"Too many files in field {field!r}. Maximum is {limit}")

        mimetype = _decode(headers.get(b"content-type", b"")).strip()
        if mimetype not in config.ALLOWED_MIME_TYPES:
            raise InvalidMediaType(f"Only jpg/png/gif/mp4 allowed, got {mimetype!r}")

        self._field = field
        self._writer = await self.storage_manager.open_part(_decode(options[b"filename"]), mimetype)

    async def _abort(self):
        if self._writer is not None:
            await self._writer.abort()
            self._writer = None
        await self.storage_manager.discard_stored(
            [item for items in self._stored.values() for item in items]
        )
