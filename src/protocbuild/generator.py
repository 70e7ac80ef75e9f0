"""Helpers for writing custom code generators that speak the compiler's plugin protocol.

The compiler writes a serialized ``CodeGeneratorRequest`` to the generator's
stdin and reads a ``CodeGeneratorResponse`` from its stdout. A response holds
either generated files or a single error string.
"""

from __future__ import annotations

import sys
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import BinaryIO

from google.protobuf.compiler import plugin_pb2
from google.protobuf.message import DecodeError


@dataclass(frozen=True, slots=True)
class GeneratedFile:
    name: str
    content: str


Generate = Callable[[plugin_pb2.CodeGeneratorRequest], Iterable[GeneratedFile]]


def parse_request(payload: bytes) -> plugin_pb2.CodeGeneratorRequest:
    request = plugin_pb2.CodeGeneratorRequest()
    request.ParseFromString(payload)
    return request


def build_response(files: Iterable[GeneratedFile]) -> plugin_pb2.CodeGeneratorResponse:
    response = plugin_pb2.CodeGeneratorResponse()
    for generated in files:
        entry = response.file.add()
        entry.name = generated.name
        entry.content = generated.content
    return response


def error_response(message: str) -> plugin_pb2.CodeGeneratorResponse:
    response = plugin_pb2.CodeGeneratorResponse()
    response.error = message
    return response


def serve(
    generate: Generate,
    *,
    stdin: BinaryIO | None = None,
    stdout: BinaryIO | None = None,
) -> int:
    """Answer one compiler request on the given streams.

    Failures inside *generate* are reported through the response's error
    field, which the compiler prints and turns into a nonzero exit.
    """
    source = stdin if stdin is not None else sys.stdin.buffer
    sink = stdout if stdout is not None else sys.stdout.buffer
    try:
        request = parse_request(source.read())
        response = build_response(generate(request))
    except (DecodeError, ValueError, OSError) as exc:
        response = error_response(str(exc) or type(exc).__name__)
    sink.write(response.SerializeToString())
    sink.flush()
    return 0


def echo_generator(prefix: str = "") -> Generate:
    """Generator that emits ``<prefix><name>.txt`` holding each source file's name."""

    def generate(request: plugin_pb2.CodeGeneratorRequest) -> list[GeneratedFile]:
        return [
            GeneratedFile(name=prefix + name.replace(".proto", ".txt"), content=name)
            for name in request.file_to_generate
        ]

    return generate


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else argv
    return serve(echo_generator(args[0] if args else ""))


if __name__ == "__main__":
    raise SystemExit(main())
