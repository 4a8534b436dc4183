"""
Platform-independent key vocabulary.

Backends translate raw key codes into these names at the driver boundary,
so recording and execution never see platform-specific representations.
Pure string handling: no pyautogui or pynput dependency.

Names:
  modifiers  ctrl, shift, alt, meta
  named      enter, tab, space, backspace, delete, escape, insert, capslock,
             home, end, pageup, pagedown, up, down, left, right, f1..f24
  printable  any single character ('a', '7', '/')
"""

from __future__ import annotations

MODIFIERS: tuple[str, ...] = ('ctrl', 'shift', 'alt', 'meta')

NAMED_KEYS = frozenset({
    'enter', 'tab', 'space', 'backspace', 'delete', 'escape', 'insert',
    'capslock', 'home', 'end', 'pageup', 'pagedown',
    'up', 'down', 'left', 'right',
    'printscreen', 'pause', 'numlock', 'scrolllock', 'menu',
    *(f'f{n}' for n in range(1, 25)),
})

FUNCTION_KEYS = frozenset(f'f{n}' for n in range(1, 25))

# Alternate spellings seen in key specs and backend key names
_ALIASES: dict[str, str] = {
    'control': 'ctrl', 'ctrl_l': 'ctrl', 'ctrl_r': 'ctrl',
    'lcontrol': 'ctrl', 'rcontrol': 'ctrl', 'lctrl': 'ctrl', 'rctrl': 'ctrl',
    'shift_l': 'shift', 'shift_r': 'shift', 'lshift': 'shift', 'rshift': 'shift',
    'option': 'alt', 'alt_l': 'alt', 'alt_r': 'alt', 'alt_gr': 'alt',
    'lalt': 'alt', 'ralt': 'alt',
    'cmd': 'meta', 'cmd_l': 'meta', 'cmd_r': 'meta', 'command': 'meta',
    'super': 'meta', 'win': 'meta', 'windows': 'meta', 'lmeta': 'meta', 'rmeta': 'meta',
    'return': 'enter', 'esc': 'escape', 'del': 'delete', 'ins': 'insert',
    'caps_lock': 'capslock', 'page_up': 'pageup', 'page_down': 'pagedown',
    'pgup': 'pageup', 'pgdn': 'pagedown',
    'uparrow': 'up', 'downarrow': 'down', 'leftarrow': 'left', 'rightarrow': 'right',
    'print_screen': 'printscreen', 'num_lock': 'numlock', 'scroll_lock': 'scrolllock',
    'spacebar': 'space', 'back': 'backspace',
}

# Spelling of the plus key inside a '+'-joined spec
_PLUS = 'plus'


class UnsupportedKeyError(ValueError):
    """A key spec names a key outside the vocabulary."""


def normalize_key_name(name: str) -> str | None:
    """Map a key name or character to the stable vocabulary.

    Letters are lower-cased. Returns None for names outside the vocabulary.
    """
    if not name:
        return None
    if name == ' ':
        return 'space'
    if len(name) == 1:
        if name.isprintable():
            return name.lower()
        return None
    lower = name.strip().lower()
    if lower == _PLUS:
        return '+'
    lower = _ALIASES.get(lower, lower)
    if lower in MODIFIERS or lower in NAMED_KEYS:
        return lower
    # Single characters wrapped in whitespace (' a ')
    if len(lower) == 1 and lower.isprintable():
        return lower
    return None


def parse_key_spec(spec: str) -> tuple[str, ...]:
    """Split 'ctrl+shift+t' into normalized key names.

    A lone '+' is the plus key. Raises UnsupportedKeyError for unknown names
    or empty specs.
    """
    if not isinstance(spec, str) or not spec:
        raise UnsupportedKeyError(f'Empty key spec: {spec!r}')
    if spec == '+':
        return ('+',)
    parts = spec.split('+')
    # 'ctrl++' -> ['ctrl', '', ''] means ctrl and the plus key
    if spec.endswith('++'):
        parts = parts[:-2] + ['+']
    names = []
    for part in parts:
        name = normalize_key_name(part.strip()) if part.strip() else None
        if name is None:
            raise UnsupportedKeyError(f'Unsupported key: {part!r} in {spec!r}')
        if name not in names:
            names.append(name)
    return tuple(names)


def is_letter(name: str) -> bool:
    return len(name) == 1 and name.isalpha()


def format_combo(keys: list[str] | tuple[str, ...], shift_held: bool = False) -> str:
    """Join recorded keys into a spec that parse_key_spec accepts.

    Modifiers come first in MODIFIERS order, then the rest in press order.
    Letters are upper-case only when shift was held.
    """
    mods = [m for m in MODIFIERS if m in keys]
    rest = [k for k in keys if k not in MODIFIERS]
    out = []
    for k in mods + rest:
        if is_letter(k):
            k = k.upper() if shift_held else k.lower()
        out.append(_PLUS if k == '+' else k)
    return '+'.join(out)
