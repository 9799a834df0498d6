"""
Config File I/O

Reads and writes the INI file the synchronized store is loaded from:

    # comment
    [CONFIG_SYNC]
    WPF_HOST=192.168.4.10
    WPF_RECV_PORT=12347

Keys keep their case, '%' is not interpolated, '#' and ';' start
comments, and repeated sections or keys keep the last value. [DEFAULT]
is an ordinary section; its entries are not inherited by other sections.

Saving and loading again yields exactly the saved records. Records the
file format would alter are left out of the file and logged: keys that
would read back as comments, names or values with surrounding
whitespace, and anything that cannot go on a record line.
"""

import configparser
import logging
import os
import tempfile
from typing import Iterable, List

from ..errors import LoadError, SaveError
from ..protocol.records import Record

logger = logging.getLogger(__name__)

COMMENT_PREFIXES = ("#", ";")

# A section header cannot span lines, so no file section maps onto this
_NO_DEFAULT_SECTION = "\n"


def _new_parser() -> configparser.ConfigParser:
    parser = configparser.ConfigParser(
        delimiters=("=",),
        comment_prefixes=COMMENT_PREFIXES,
        inline_comment_prefixes=None,
        strict=False,
        interpolation=None,
        default_section=_NO_DEFAULT_SECTION,
    )
    parser.optionxform = str
    return parser


def is_saveable(record: Record) -> bool:
    """Check whether a record reads back unchanged after a save."""
    if not record.is_representable:
        return False
    if record.key.startswith(COMMENT_PREFIXES):
        return False
    return all(text == text.strip() for text in record)


def load_config_file(path: str) -> List[Record]:
    """
    Load every (section, key, value) entry from an INI file.

    Args:
        path: Path to the config file

    Returns:
        Records in file order

    Raises:
        LoadError: File missing, unreadable or not valid INI
    """
    parser = _new_parser()
    try:
        with open(path, encoding="utf-8") as f:
            parser.read_file(f)
    except OSError as exc:
        raise LoadError(f"cannot read '{path}': {exc}") from exc
    except (configparser.Error, UnicodeDecodeError) as exc:
        raise LoadError(f"cannot parse '{path}': {exc}") from exc

    records = [
        Record(section, key, value)
        for section in parser.sections()
        for key, value in parser.items(section, raw=True)
    ]
    logger.info(f"Loaded {len(records)} settings from {path}")
    return records


def save_config_file(path: str, records: Iterable[Record]) -> None:
    """
    Rewrite an INI file with the given records.

    The file is written to a temporary file in the same directory and
    renamed over the target, so readers never see a partial file.
    Comments in the previous file are not preserved.

    Args:
        path: Path to the config file
        records: Entries to write, grouped by section in first-seen order;
            records that would not read back unchanged are skipped

    Raises:
        SaveError: File could not be written
    """
    parser = _new_parser()
    for record in records:
        if not is_saveable(record):
            logger.warning(f"Not saving {record.section}.{record.key!r}: cannot be stored in an INI file as is")
            continue
        if not parser.has_section(record.section):
            parser.add_section(record.section)
        parser.set(record.section, record.key, record.value)

    directory = os.path.dirname(os.path.abspath(path))
    try:
        temp_fd, temp_path = tempfile.mkstemp(
            suffix=".tmp",
            dir=directory,
            prefix=f".{os.path.basename(path)}.",
        )
    except OSError as exc:
        raise SaveError(f"cannot write '{path}': {exc}") from exc

    try:
        with os.fdopen(temp_fd, "w", encoding="utf-8") as f:
            parser.write(f, space_around_delimiters=False)
        os.chmod(temp_path, 0o644)
        os.replace(temp_path, path)
    except OSError as exc:
        try:
            os.unlink(temp_path)
        except OSError:
            pass
        raise SaveError(f"cannot write '{path}': {exc}") from exc

    logger.info(f"Saved config to {path}")
