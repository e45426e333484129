"""
Parse and resolve git conflict markers in raw file text.

Nothing in this module raises on malformed input: stray or
unbalanced markers degrade to "no block found" and the file
keeps its markers, which `has_conflict_markers` reports.
All line arithmetic runs over `normalize`d text.
"""
from dataclasses import dataclass
from typing import Sequence
from enum import Enum

from ._constants import CONFLICT_START, CONFLICT_SEPARATOR
from ._constants import CONFLICT_END, UTF8_BOM

# diff3/zdiff3 conflict style adds a merge-base section
# between the local side and the separator
CONFLICT_BASE = "|||||||"


class ResolutionChoice(str, Enum):
    LOCAL  = "local"
    REMOTE = "remote"
    BOTH   = "both"


@dataclass(frozen=True)
class ConflictBlock:
    """
    One `<<<<<<< / ======= / >>>>>>>` region.

    Each side is kept as its lines: an empty side is `()`,
    a side holding one blank line is `("",)`. `start_line`
    and `end_line` are 0-indexed and inclusive, covering
    both markers. Blocks go stale as soon as the text they
    were parsed from is rewritten.
    """
    local_lines: tuple[str, ...]
    remote_lines: tuple[str, ...]
    start_line: int
    end_line: int
    base_lines: tuple[str, ...] = ()
    local_label: str = ""
    remote_label: str = ""

    @property
    def local_text(self) -> str: return "\n".join(self.local_lines)

    @property
    def remote_text(self) -> str: return "\n".join(self.remote_lines)

    @property
    def base_text(self) -> str: return "\n".join(self.base_lines)


def normalize(content: str) -> str:
    if content.startswith(UTF8_BOM): content = content[len(UTF8_BOM):]
    return content.replace("\r\n", "\n").replace("\r", "\n")


def parse_conflict_blocks(content: str) -> list[ConflictBlock]:
    lines  = normalize(content).split("\n")
    blocks: list[ConflictBlock] = []

    start: int | None = None
    side   = "local"
    label  = ""
    local: list[str]  = []
    base: list[str]   = []
    remote: list[str] = []

    for idx, line in enumerate(lines):
        if line.startswith(CONFLICT_START):
            # a second start marker abandons the open block
            start, side = idx, "local"
            label = line[len(CONFLICT_START):].strip()
            local, base, remote = [], [], []
            continue
        if start is None: continue

        if side == "local" and line.startswith(CONFLICT_BASE):
            side = "base"
        elif side != "remote" and line.startswith(CONFLICT_SEPARATOR):
            side = "remote"
        elif side == "remote" and line.startswith(CONFLICT_END):
            blocks.append(ConflictBlock(
                local_lines=tuple(local),
                remote_lines=tuple(remote),
                start_line=start,
                end_line=idx,
                base_lines=tuple(base),
                local_label=label,
                remote_label=line[len(CONFLICT_END):].strip(),
            ))
            start = None
        elif side == "local": local.append(line)
        elif side == "base": base.append(line)
        else: remote.append(line)

    return blocks


def _fits(lines: list[str], block: ConflictBlock) -> bool:
    if block.start_line < 0 or block.end_line >= len(lines):
        return False
    if block.start_line >= block.end_line: return False
    return (lines[block.start_line].startswith(CONFLICT_START)
        and lines[block.end_line].startswith(CONFLICT_END))


def _splice(content: str, block: ConflictBlock,
            replacement: Sequence[str]) -> str:
    lines = normalize(content).split("\n")
    if not _fits(lines, block): return "\n".join(lines)
    lines[block.start_line:block.end_line + 1] = list(replacement)
    return "\n".join(lines)


def replace_conflict_block(content: str, block: ConflictBlock,
                           text: str) -> str:
    """
    Swap `block` for arbitrary `text`; stale blocks are ignored.
    An empty `text` drops the block and its markers entirely.
    """
    return _splice(content, block,
           normalize(text).split("\n") if text else [])


def resolution_lines(block: ConflictBlock,
                     choice: ResolutionChoice | str) -> tuple[str, ...]:
    choice = ResolutionChoice(choice)
    if choice is ResolutionChoice.LOCAL: return block.local_lines
    if choice is ResolutionChoice.REMOTE: return block.remote_lines
    return block.local_lines + block.remote_lines


def resolve_conflict_block(content: str, block: ConflictBlock,
                           choice: ResolutionChoice | str) -> str:
    return _splice(content, block, resolution_lines(block, choice))


def resolve_all(content: str,
                choices: Sequence[ResolutionChoice | str]) -> str:
    """
    Resolve every block of `content`, one choice per block in
    document order. Blocks are applied last to first so the
    earlier line numbers stay valid.
    """
    blocks = parse_conflict_blocks(content)
    if len(choices) != len(blocks):
        raise ValueError(f"expected {len(blocks)} choice(s), "
                         f"got {len(choices)}")
    text  = normalize(content)
    pairs = sorted(zip(blocks, choices), key=lambda p: p[0].start_line,
            reverse=True)
    for block, choice in pairs:
        text = resolve_conflict_block(text, block, choice)
    return text


def has_conflict_markers(content: str) -> bool:
    text = normalize(content)
    return CONFLICT_START in text and CONFLICT_END in text
