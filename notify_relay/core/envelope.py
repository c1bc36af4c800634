"""
Line-oriented envelope format carried by the queue.

A record is ``"<token> <destination> <body>"``. Fields are not escaped:
the token and the destination must never contain the separator, while the
body may, because decoding rejoins every trailing field into the body.
"""

from dataclasses import dataclass

from notify_relay.core.exceptions import InvalidEnvelopeError, MalformedEnvelopeError


SEPARATOR = " "
FIELD_COUNT = 3


@dataclass(frozen=True)
class Envelope:
    token: str
    destination: str
    body: str

    @property
    def is_empty(self) -> bool:
        return not (self.token or self.destination or self.body)

    def encode(self) -> str:
        return encode_envelope(self.token, self.destination, self.body)


def encode_envelope(token: str, destination: str, body: str) -> str:
    """Join token, destination and body into one queue record."""
    for name, value in (("token", token), ("destination", destination)):
        if SEPARATOR in value:
            raise InvalidEnvelopeError(
                f"Envelope {name} must not contain the separator",
                {"field": name, "value": value},
            )
    for name, value in (("token", token), ("destination", destination), ("body", body)):
        if "\n" in value or "\r" in value:
            raise InvalidEnvelopeError(
                f"Envelope {name} must not contain a line break",
                {"field": name},
            )
    return SEPARATOR.join((token, destination, body))


def decode_envelope(record: str, strict: bool = False) -> Envelope:
    """
    Split a queue record back into its envelope.

    An empty record means "no work" and decodes to an empty envelope. A
    record with fewer than three fields has its missing fields decoded as
    empty strings, unless ``strict`` is set, in which case it is rejected.
    """
    if not record:
        return Envelope("", "", "")

    fields = record.split(SEPARATOR)
    if len(fields) < FIELD_COUNT:
        if strict:
            raise MalformedEnvelopeError(
                f"Record has {len(fields)} of {FIELD_COUNT} fields",
                {"record": record},
            )
        fields += [""] * (FIELD_COUNT - len(fields))

    return Envelope(
        token=fields[0],
        destination=fields[1],
        body=SEPARATOR.join(fields[2:]),
    )
