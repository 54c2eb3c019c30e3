"""
Error handling for the Dusth runtime
Parse diagnostics with source context, plus the exit signal raised by natives
"""

from typing import Dict, List, Optional
from pyparsing import ParseException, lineno, col


# Number of unconsumed characters shown after "Position:"
SNIPPET_LENGTH = 20
CONTEXT_RADIUS = 2


# ============================================================================
# DIAGNOSTIC RECORDS (Plain Dictionaries)
# ============================================================================

def make_parse_error(
    message: str,
    location: int,
    line: int,
    column: int,
    snippet: str = "",
    expected: Optional[List[str]] = None,
    context: Optional[str] = None,
    filename: str = "<input>"
) -> Dict:
    """Create a parse error record; location is a UTF-8 byte offset"""
    return {
        'message': message,
        'filename': filename,
        'location': location,
        'line': line,
        'column': column,
        'snippet': snippet,
        'expected': list(expected or []),
        'context': context,
    }


def format_parse_error(error: Dict) -> str:
    """Render a parse error record for the terminal"""
    parts = [
        f"Parse Error: {error['message']}",
        f"  at {error['filename']}:{error['line']}:{error['column']} (offset {error['location']})",
        f"  Position: {error['snippet']}",
    ]
    if error['expected']:
        parts.append(f"  Expected: {', '.join(error['expected'])}")
    if error['context']:
        parts.append(f"  Context:\n{error['context']}")
    return '\n'.join(parts) + '\n'


# ============================================================================
# SOURCE CONTEXT
# ============================================================================

def get_context_lines(source_text: str, line_num: int, col_num: int, context_lines: int = CONTEXT_RADIUS) -> str:
    """Numbered source lines around line_num with a caret under col_num"""
    lines = source_text.split('\n')
    first = max(1, line_num - context_lines)
    last = min(len(lines), line_num + context_lines)

    rendered = []
    for number in range(first, last + 1):
        rendered.append(f"{number:4d}: {lines[number - 1]}")
        if number == line_num:
            rendered.append(' ' * (col_num + 5) + "^ Error here")
    return '\n'.join(rendered)


def get_snippet(source_text: str, location: int) -> str:
    """Unconsumed input starting at the failure offset, on one line"""
    return source_text[location:location + SNIPPET_LENGTH].replace('\n', '\\n')


def extract_expected(exc: ParseException) -> List[str]:
    """The expectation pyparsing reported, if its message names one"""
    msg = getattr(exc, 'msg', '') or ''
    prefix = "Expected "
    return [msg[len(prefix):]] if msg.startswith(prefix) else []


def enhance_parse_exception_dict(exc: ParseException, source_text: str, filename: str = "<input>") -> Dict:
    """Convert a pyparsing exception into a parse error record"""
    location = min(exc.loc, len(source_text))
    line_num = lineno(location, source_text)
    col_num = col(location, source_text)
    byte_offset = len(source_text[:location].encode("utf-8"))

    return make_parse_error(
        message=exc.msg,
        location=byte_offset,
        line=line_num,
        column=col_num,
        snippet=get_snippet(source_text, location),
        expected=extract_expected(exc),
        context=get_context_lines(source_text, line_num, col_num),
        filename=filename
    )


# ============================================================================
# EXCEPTIONS
# ============================================================================

class DusthParseError(Exception):
    """Malformed source; raised before any of it is evaluated

    Every field of the parse error record is exposed as an attribute
    (message, filename, location, line, column, snippet, expected, context).
    """
    def __init__(self, error: Dict):
        self.error = error
        for key, value in error.items():
            setattr(self, key, value)
        super().__init__(error['message'])

    def __str__(self) -> str:
        return format_parse_error(self.error)


class DusthExit(Exception):
    """Raised by the exit, panic and assert natives to stop the script"""
    def __init__(self, code: int = 0, message: str = ""):
        self.code = code
        self.message = message
        super().__init__(message or f"exit {code}")


def parse_error_from_exception(exc: ParseException, source_text: str, filename: str = "<input>") -> DusthParseError:
    """Convert a pyparsing exception into DusthParseError"""
    return DusthParseError(enhance_parse_exception_dict(exc, source_text, filename))
