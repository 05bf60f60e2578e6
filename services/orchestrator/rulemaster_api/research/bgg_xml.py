"""
Parsers for BoardGameGeek XML API v2 payloads.

Each parser returns a Result so malformed payloads surface as a Parsing error
at this boundary instead of as attribute errors further down.
"""

import xml.etree.ElementTree as ET
from typing import List, Optional, Tuple

from .errors import Err, ErrorKind, GatewayError, Ok, Result
from .models import GameDetail, SearchResult

SEARCHABLE_TYPES = ("boardgame",)


def _parse_root(xml_text: str) -> Result[ET.Element]:
    if not xml_text or not xml_text.strip():
        return Err(GatewayError(ErrorKind.PARSING, "Empty XML payload"))
    try:
        return Ok(ET.fromstring(xml_text))
    except ET.ParseError as e:
        return Err(GatewayError(ErrorKind.PARSING, f"Malformed XML: {e}", original=e))


def _upstream_error(root: ET.Element) -> Optional[GatewayError]:
    if root.tag not in ("errors", "error") and root.find("error") is None:
        return None
    message = root.findtext(".//message") or "Upstream reported an error"
    return GatewayError(ErrorKind.API, message.strip())


def _int_value(element: Optional[ET.Element]) -> Optional[int]:
    if element is None:
        return None
    try:
        return int(element.get("value", ""))
    except ValueError:
        return None


def _float_value(element: Optional[ET.Element]) -> Optional[float]:
    if element is None:
        return None
    try:
        value = float(element.get("value", ""))
    except ValueError:
        return None
    return value or None


def _text(element: Optional[ET.Element]) -> Optional[str]:
    if element is None or element.text is None:
        return None
    return element.text.strip() or None


def parse_search_response(xml_text: str) -> Result[List[SearchResult]]:
    """Parse a ``/search`` payload into search results."""
    parsed = _parse_root(xml_text)
    if isinstance(parsed, Err):
        return parsed
    root = parsed.value

    error = _upstream_error(root)
    if error is not None:
        return Err(error)
    if root.tag != "items":
        return Err(GatewayError(ErrorKind.PARSING, f"Unexpected root element <{root.tag}>"))

    results: List[SearchResult] = []
    for item in root.findall("item"):
        if item.get("type", "boardgame") not in SEARCHABLE_TYPES:
            continue
        try:
            external_id = int(item.get("id", ""))
        except ValueError:
            continue
        name_element = item.find("name")
        name = name_element.get("value") if name_element is not None else None
        if not name:
            continue
        results.append(
            SearchResult(
                external_id=external_id,
                name=name,
                year_published=_int_value(item.find("yearpublished")),
            )
        )
    return Ok(results)


def _links(item: ET.Element, link_type: str) -> Tuple[str, ...]:
    return tuple(
        link.get("value")
        for link in item.findall(f"link[@type='{link_type}']")
        if link.get("value")
    )


def parse_game_detail(xml_text: str, game_id: int) -> Result[GameDetail]:
    """Parse a ``/thing`` payload for a single game."""
    parsed = _parse_root(xml_text)
    if isinstance(parsed, Err):
        return parsed
    root = parsed.value

    error = _upstream_error(root)
    if error is not None:
        return Err(error)

    item = root.find("item")
    if item is None:
        return Err(GatewayError(ErrorKind.NOT_FOUND, f"Game {game_id} not found"))

    name_element = item.find("name[@type='primary']")
    if name_element is None:
        name_element = item.find("name")
    name = name_element.get("value") if name_element is not None else None
    if not name:
        return Err(GatewayError(ErrorKind.PARSING, f"Game {game_id} has no name"))

    try:
        external_id = int(item.get("id", game_id))
    except ValueError:
        external_id = game_id

    ratings = item.find("statistics/ratings")
    rank = None
    average = users_rated = weight = None
    if ratings is not None:
        average = _float_value(ratings.find("average"))
        users_rated = _int_value(ratings.find("usersrated"))
        weight = _float_value(ratings.find("averageweight"))
        rank = _int_value(ratings.find("ranks/rank[@name='boardgame']"))

    return Ok(
        GameDetail(
            external_id=external_id,
            name=name,
            year_published=_int_value(item.find("yearpublished")),
            min_players=_int_value(item.find("minplayers")),
            max_players=_int_value(item.find("maxplayers")),
            playing_time=_int_value(item.find("playingtime")),
            min_play_time=_int_value(item.find("minplaytime")),
            max_play_time=_int_value(item.find("maxplaytime")),
            min_age=_int_value(item.find("minage")),
            description=_text(item.find("description")) or "",
            thumbnail=_text(item.find("thumbnail")),
            image=_text(item.find("image")),
            average_rating=average,
            users_rated=users_rated,
            rank=rank,
            weight=weight,
            publishers=_links(item, "boardgamepublisher"),
            designers=_links(item, "boardgamedesigner"),
            categories=_links(item, "boardgamecategory"),
            mechanics=_links(item, "boardgamemechanic"),
        )
    )
