"""Operator command parsing.

Raw chat text and button payloads are parsed into a closed set of command
variants before dispatch. Arguments are validated here, so handlers never
see malformed input.
"""

import re
from dataclasses import dataclass
from typing import Optional, Union

COMMAND_PREFIX = "/"

ANSWER_INTENT_PREFIX = "answer_"
SHIPMENT_INTENT_PREFIX = "shipment_"

# ASCII only; str.isdigit() also accepts digits int() rejects, like "²"
_DIGITS = re.compile(r"[0-9]+")


class MalformedCommand(Exception):
    """Raised when a known command has missing or invalid arguments."""

    def __init__(self, command: str, usage: str):
        super().__init__(f"Malformed {command} command, usage: {usage}")
        self.command = command
        self.usage = usage


@dataclass(frozen=True)
class Start:
    pass


@dataclass(frozen=True)
class Menu:
    pass


@dataclass(frozen=True)
class Help:
    pass


@dataclass(frozen=True)
class Status:
    pass


@dataclass(frozen=True)
class ProductInfo:
    pass


@dataclass(frozen=True)
class CheckSales:
    pass


@dataclass(frozen=True)
class CheckQuestions:
    pass


@dataclass(frozen=True)
class Respond:
    question_id: str


@dataclass(frozen=True)
class SetStock:
    item_id: str
    quantity: int


@dataclass(frozen=True)
class CheckShipment:
    shipment_id: str


@dataclass(frozen=True)
class Unknown:
    text: str


PublicCommand = Union[Start, Menu, Help, Status]
PrivateCommand = Union[
    ProductInfo, CheckSales, CheckQuestions, Respond, SetStock, CheckShipment
]
Command = Union[PublicCommand, PrivateCommand, Unknown]

PUBLIC_COMMANDS = (Start, Menu, Help, Status)

USAGE = {
    "/responder": "/responder (ID_Pregunta)",
    "/setstock": "/setstock (ID_Producto) (Cantidad)",
    "/checkshipment": "/checkshipment (ID_Envío)",
}

_NO_ARGS = {
    "/start": Start,
    "/menu": Menu,
    "/help": Help,
    "/status": Status,
    "/productinfo": ProductInfo,
    "/checksales": CheckSales,
    "/checkquestions": CheckQuestions,
}


def is_command(text: str) -> bool:
    return text.strip().startswith(COMMAND_PREFIX)


def _numeric_id(command: str, args: list[str], index: int = 0) -> str:
    if len(args) <= index or not _DIGITS.fullmatch(args[index]):
        raise MalformedCommand(command, USAGE[command])
    return args[index]


def parse_command(text: str) -> Command:
    """Parse operator text into a command variant.

    Args:
        text: Raw message text.

    Returns:
        The parsed command; ``Unknown`` for anything unrecognized.

    Raises:
        MalformedCommand: If a known command has invalid arguments.
    """
    parts = text.strip().split()
    if not parts or not parts[0].startswith(COMMAND_PREFIX):
        return Unknown(text)

    # "/menu@MyBot" is how Telegram addresses commands in groups
    name = parts[0].split("@", 1)[0].lower()
    args = parts[1:]

    if name in _NO_ARGS:
        return _NO_ARGS[name]()

    if name == "/responder":
        return Respond(question_id=_numeric_id(name, args))

    if name == "/checkshipment":
        return CheckShipment(shipment_id=_numeric_id(name, args))

    if name == "/setstock":
        if len(args) < 2 or not _DIGITS.fullmatch(args[1]):
            raise MalformedCommand(name, USAGE[name])
        return SetStock(item_id=args[0], quantity=int(args[1]))

    return Unknown(text)


def encode_answer_intent(question_id: str) -> str:
    return f"{ANSWER_INTENT_PREFIX}{question_id}"


def encode_shipment_intent(shipment_id: str) -> str:
    return f"{SHIPMENT_INTENT_PREFIX}{shipment_id}"


def parse_button(data: str) -> Optional[Union[Respond, CheckShipment]]:
    """Parse an inline button payload, or None if it is not ours."""
    if data.startswith(ANSWER_INTENT_PREFIX):
        question_id = data[len(ANSWER_INTENT_PREFIX) :]
        if _DIGITS.fullmatch(question_id):
            return Respond(question_id=question_id)
    elif data.startswith(SHIPMENT_INTENT_PREFIX):
        shipment_id = data[len(SHIPMENT_INTENT_PREFIX) :]
        if _DIGITS.fullmatch(shipment_id):
            return CheckShipment(shipment_id=shipment_id)
    return None
