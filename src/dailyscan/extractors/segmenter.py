from __future__ import annotations

from bs4.element import Tag

from dailyscan.extractors.candidates import HEADING_TAGS
from dailyscan.extractors.dom import tag_text
from dailyscan.models import Block, BlockType

MIN_DIV_TEXT_LENGTH = 50
DUPLICATE_SIMILARITY = 0.8


def jaccard_similarity(first: str, second: str) -> float:
    words_first = set(first.split())
    words_second = set(second.split())
    union = words_first | words_second
    if not union:
        return 0.0
    return len(words_first & words_second) / len(union)


def is_duplicate(text: str, blocks: list[Block]) -> bool:
    return any(jaccard_similarity(text, block.text) > DUPLICATE_SIMILARITY for block in blocks)


def segment_blocks(fragment: Tag, document_order: bool = False) -> tuple[Block, ...]:
    """Split the winning candidate into heading, paragraph and list blocks.

    Blocks are emitted pass by pass: every heading, then every paragraph, then
    a single list block holding all list items, then long `div` texts that do
    not repeat an earlier block. With ``document_order`` the same blocks are
    re-sorted by where their source element starts.
    """
    positions = {id(tag): index for index, tag in enumerate(fragment.find_all(True))}
    placed: list[tuple[int, Block]] = []

    def add(block: Block, tag: Tag) -> None:
        placed.append((positions.get(id(tag), 0), block))

    for heading in fragment.find_all(list(HEADING_TAGS)):
        text = tag_text(heading)
        if text:
            add(Block(BlockType.HEADING, text, level=int(heading.name[1])), heading)

    for paragraph in fragment.find_all("p"):
        text = tag_text(paragraph)
        if text:
            add(Block(BlockType.PARAGRAPH, text), paragraph)

    items = fragment.find_all("li")
    item_texts = [text for text in (tag_text(item) for item in items) if text]
    if item_texts:
        add(Block(BlockType.LIST, "\n".join(item_texts)), items[0])

    for div in fragment.find_all("div"):
        text = tag_text(div)
        if len(text) > MIN_DIV_TEXT_LENGTH and not is_duplicate(text, [block for _, block in placed]):
            add(Block(BlockType.PARAGRAPH, text), div)

    if not placed:
        text = tag_text(fragment)
        if text:
            return (Block(BlockType.PARAGRAPH, text),)
        return ()

    if document_order:
        placed.sort(key=lambda entry: entry[0])
    return tuple(block for _, block in placed)
