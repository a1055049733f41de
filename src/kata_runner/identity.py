"""Pure identity rules: kata ids, avatar names, uids and image names."""

from __future__ import annotations

import re
from typing import Any

from .errors import fail_avatar_name

AVATAR_NAMES: tuple[str, ...] = (
    "alligator", "antelope", "bat", "bear", "bee", "beetle", "buffalo", "butterfly",
    "cheetah", "crab", "deer", "dolphin", "eagle", "elephant", "flamingo", "fox",
    "frog", "gopher", "gorilla", "heron", "hippo", "hummingbird", "hyena", "jellyfish",
    "kangaroo", "kingfisher", "koala", "leopard", "lion", "lizard", "lobster", "moose",
    "mouse", "ostrich", "owl", "panda", "parrot", "peacock", "penguin", "porcupine",
    "puffin", "rabbit", "raccoon", "ray", "rhino", "salmon", "seal", "shark",
    "skunk", "snake", "spider", "squid", "squirrel", "starfish", "swan", "tiger",
    "toucan", "tuna", "turtle", "vulture", "walrus", "whale", "wolf", "zebra",
)

_AVATAR_INDEX = {name: index for index, name in enumerate(AVATAR_NAMES)}

UID_BASE = 40000
GROUP = "cyber-dojo"
GID = 5000
SANDBOXES_ROOT = "/sandboxes"
SHARED_DIR = f"{SANDBOXES_ROOT}/shared"

_HEX = frozenset("0123456789ABCDEF")
_NAME_COMPONENT = r"[a-z0-9]+(?:(?:[._]|__|[-]*)[a-z0-9]+)*"
_NAME_RE = re.compile(rf"^{_NAME_COMPONENT}(?:/{_NAME_COMPONENT})*$")
_TAG_RE = re.compile(r"^[\w][\w.-]{0,127}$", re.ASCII)
_HOST_COMPONENT_RE = re.compile(r"^(?:[a-zA-Z0-9]|[a-zA-Z0-9][a-zA-Z0-9-]*[a-zA-Z0-9])$")


def valid_kata_id(kata_id: Any) -> bool:
    return isinstance(kata_id, str) and len(kata_id) == 10 and all(char in _HEX for char in kata_id)


def valid_avatar_name(avatar_name: Any) -> bool:
    return isinstance(avatar_name, str) and avatar_name in _AVATAR_INDEX


def user_id(avatar_name: Any) -> int:
    """Return the in-sandbox uid of an avatar; the same name always maps to the same uid."""
    if not valid_avatar_name(avatar_name):
        raise fail_avatar_name("invalid")
    return UID_BASE + _AVATAR_INDEX[avatar_name]


def avatar_dir(avatar_name: Any) -> str:
    if not valid_avatar_name(avatar_name):
        raise fail_avatar_name("invalid")
    return f"{SANDBOXES_ROOT}/{avatar_name}"


def split_image_name(image_name: str) -> tuple[str, str, str]:
    """Split ``[host/]name[:tag]`` into ``(host, name, tag)``.

    The first component is only treated as a registry host when it looks like
    one (contains ``.`` or ``:``, or is ``localhost``).
    """
    host = ""
    remote = image_name
    first, slash, rest = image_name.partition("/")
    if slash and ("." in first or ":" in first or first == "localhost"):
        host, remote = first, rest
    name, colon, tag = remote.partition(":")
    if not colon:
        tag = ""
    return host, name, tag


def valid_image_name(image_name: Any) -> bool:
    if not isinstance(image_name, str) or not image_name or image_name.endswith(":"):
        return False
    host, name, tag = split_image_name(image_name)
    if host and not _valid_host(host):
        return False
    if tag and not _TAG_RE.match(tag):
        return False
    return bool(_NAME_RE.match(name))


def image_tag(image_name: str) -> str:
    return split_image_name(image_name)[2]


def image_repository(image_name: str) -> str:
    """Return the image name without its tag, as ``docker images`` lists it."""
    host, name, _tag = split_image_name(image_name)
    return f"{host}/{name}" if host else name


def _valid_host(host: str) -> bool:
    hostname, colon, port = host.partition(":")
    if colon and not port.isdigit():
        return False
    return all(_HOST_COMPONENT_RE.match(part) for part in hostname.split("."))
