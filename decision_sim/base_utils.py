# decision_sim/base_utils.py


import json
import logging
import re

import commentjson

logger = logging.getLogger("decision_sim")


class BaseUtils():

    # -----------------------
    # General Utils
    # -----------------------

    def color_print(self, text, color=None, level=logging.INFO):
        COLOR_CODES = {
            'black': '30', 'red': '31', 'green': '32', 'yellow': '33', 'blue': '34', 'magenta': '35',
            'cyan': '36', 'white': '37', 'bright_black': '90', 'bright_red': '91', 'bright_green': '92',
            'bright_yellow': '93', 'bright_blue': '94', 'bright_magenta': '95', 'bright_cyan': '96', 'bright_white': '97'
        }
        if color and color.lower() in COLOR_CODES:
            color_code = COLOR_CODES[color.lower()]
            start = f"\033[{color_code}m"
            end = "\033[0m"
            text = f"{start}{text}{end}"
        logger.log(level, str(text))
        return False

    def clean_triple_backticks(self, code) -> str:
        pattern = r'```[a-zA-Z]*\n?|```\n?'
        return re.sub(pattern, '', code)

    def unsafe_string_format(self, dest_string, print_unused_keys_report=True, **kwargs):
        """
        Formats a destination string by replacing {KEY} placeholders with the matching kwargs.

        Unlike str.format it only touches the keys passed in kwargs, so literal braces
        (JSON examples inside prompts) survive untouched.
        """
        missing_keys = []

        def replacer(match):
            key = match.group(1)
            if key in kwargs:
                return str(kwargs[key])
            missing_keys.append(key)
            return match.group(0)

        pattern = re.compile(r'\{(\w+)\}')
        result = pattern.sub(replacer, dest_string)
        if missing_keys and print_unused_keys_report:
            logger.debug(f"Missing keys within string-to-format in unsafe_string_format: {', '.join(missing_keys)}")
        return result

    def preview(self, data) -> str:
        try:
            return json.dumps(data, indent=2, default=str)
        except (TypeError, ValueError):
            return str(data)

    # -----------------------
    # Structured output parsing
    # -----------------------

    def _outermost_json_span(self, text: str) -> str:
        """
        Cuts any prose before the first '{' / '[' and after the matching last '}' / ']'.
        """
        starts = [i for i in (text.find("{"), text.find("[")) if i != -1]
        if not starts:
            return text
        start = min(starts)
        closing = "}" if text[start] == "{" else "]"
        end = text.rfind(closing)
        if end <= start:
            return text
        return text[start:end + 1]

    def load_structured_json(self, raw_text: str):
        """
        Parses a model reply that is supposed to be a single JSON value.

        Tolerates code fences, comments and prose around the value; anything else
        raises ValueError. Nothing is repaired or guessed.
        """
        text = self.clean_triple_backticks(raw_text or "").strip()
        if not text:
            raise ValueError("empty reply")
        try:
            return commentjson.loads(text)
        except Exception as first_error:
            span = self._outermost_json_span(text)
            if span == text:
                raise ValueError(f"not valid JSON: {first_error}") from first_error
            try:
                return commentjson.loads(span)
            except Exception as e:
                raise ValueError(f"not valid JSON: {e}") from e

    # -----------------------
    # Transcript helpers
    # -----------------------

    def format_transcript(self, transcript) -> str:
        """
        Renders the transcript one line per entry as 'ROLE: content', in turn order.
        """
        return "\n".join(f"{entry.role.upper()}: {entry.content}" for entry in transcript)
