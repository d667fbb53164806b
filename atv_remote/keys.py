"""Remote key codes for Android TV.

Values are Android ``KeyEvent`` key codes, as accepted by the remote
protocol's key-inject message.
"""

from typing import Dict, Union

# Power
KEY_POWER = 26
KEY_SLEEP = 223
KEY_WAKEUP = 224

# Navigation
KEY_DPAD_UP = 19
KEY_DPAD_DOWN = 20
KEY_DPAD_LEFT = 21
KEY_DPAD_RIGHT = 22
KEY_DPAD_CENTER = 23
KEY_ENTER = 66

# Menu/Back
KEY_HOME = 3
KEY_BACK = 4
KEY_MENU = 82
KEY_SEARCH = 84
KEY_SETTINGS = 176

# Volume
KEY_VOLUME_UP = 24
KEY_VOLUME_DOWN = 25
KEY_VOLUME_MUTE = 164

# Playback
KEY_MEDIA_PLAY_PAUSE = 85
KEY_MEDIA_STOP = 86
KEY_MEDIA_NEXT = 87
KEY_MEDIA_PREVIOUS = 88
KEY_MEDIA_REWIND = 89
KEY_MEDIA_FAST_FORWARD = 90
KEY_MEDIA_PLAY = 126
KEY_MEDIA_PAUSE = 127
KEY_MEDIA_AUDIO_TRACK = 222

# Numbers
KEY_0 = 7
KEY_1 = 8
KEY_2 = 9
KEY_3 = 10
KEY_4 = 11
KEY_5 = 12
KEY_6 = 13
KEY_7 = 14
KEY_8 = 15
KEY_9 = 16
KEY_PERIOD = 56

# Channel
KEY_CHANNEL_UP = 166
KEY_CHANNEL_DOWN = 167
KEY_LAST_CHANNEL = 229
KEY_GUIDE = 172
KEY_INFO = 165
KEY_CAPTIONS = 175

# Color buttons
KEY_PROG_RED = 183
KEY_PROG_GREEN = 184
KEY_PROG_YELLOW = 185
KEY_PROG_BLUE = 186

# Inputs
KEY_TV_INPUT = 178
KEY_TV_ANTENNA_CABLE = 242
KEY_TV_INPUT_HDMI_1 = 243
KEY_TV_INPUT_HDMI_2 = 244
KEY_TV_INPUT_HDMI_3 = 245
KEY_TV_INPUT_HDMI_4 = 246
KEY_TV_INPUT_COMPOSITE_1 = 247
KEY_TV_INPUT_COMPONENT_1 = 248
KEY_TV_INPUT_COMPONENT_2 = 249
KEY_TV_INPUT_VGA_1 = 250
KEY_TV_AUDIO_DESCRIPTION = 252

# Picture
KEY_BRIGHTNESS_DOWN = 220
KEY_BRIGHTNESS_UP = 221

# Android key names (without the KEYCODE_ prefix) -> key code
ALL_KEYS: Dict[str, int] = {
    name[len("KEY_"):]: value
    for name, value in list(globals().items())
    if name.startswith("KEY_") and isinstance(value, int)
}

# Friendly name mappings
KEY_NAME_MAP: Dict[str, int] = {
    "power": KEY_POWER,
    "up": KEY_DPAD_UP,
    "down": KEY_DPAD_DOWN,
    "left": KEY_DPAD_LEFT,
    "right": KEY_DPAD_RIGHT,
    "ok": KEY_DPAD_CENTER,
    "select": KEY_DPAD_CENTER,
    "center": KEY_DPAD_CENTER,
    "enter": KEY_ENTER,
    "home": KEY_HOME,
    "back": KEY_BACK,
    "menu": KEY_MENU,
    "search": KEY_SEARCH,
    "settings": KEY_SETTINGS,
    "volumeup": KEY_VOLUME_UP,
    "volup": KEY_VOLUME_UP,
    "vol+": KEY_VOLUME_UP,
    "volumedown": KEY_VOLUME_DOWN,
    "voldown": KEY_VOLUME_DOWN,
    "vol-": KEY_VOLUME_DOWN,
    "mute": KEY_VOLUME_MUTE,
    "play": KEY_MEDIA_PLAY,
    "pause": KEY_MEDIA_PAUSE,
    "playpause": KEY_MEDIA_PLAY_PAUSE,
    "stop": KEY_MEDIA_STOP,
    "next": KEY_MEDIA_NEXT,
    "previous": KEY_MEDIA_PREVIOUS,
    "prev": KEY_MEDIA_PREVIOUS,
    "rewind": KEY_MEDIA_REWIND,
    "rew": KEY_MEDIA_REWIND,
    "fastforward": KEY_MEDIA_FAST_FORWARD,
    "ff": KEY_MEDIA_FAST_FORWARD,
    "channelup": KEY_CHANNEL_UP,
    "ch+": KEY_CHANNEL_UP,
    "channeldown": KEY_CHANNEL_DOWN,
    "ch-": KEY_CHANNEL_DOWN,
    "lastchannel": KEY_LAST_CHANNEL,
    "guide": KEY_GUIDE,
    "info": KEY_INFO,
    "captions": KEY_CAPTIONS,
    "input": KEY_TV_INPUT,
    "hdmi1": KEY_TV_INPUT_HDMI_1,
    "hdmi2": KEY_TV_INPUT_HDMI_2,
    "hdmi3": KEY_TV_INPUT_HDMI_3,
    "hdmi4": KEY_TV_INPUT_HDMI_4,
    "red": KEY_PROG_RED,
    "green": KEY_PROG_GREEN,
    "yellow": KEY_PROG_YELLOW,
    "blue": KEY_PROG_BLUE,
    "sleep": KEY_SLEEP,
    "wakeup": KEY_WAKEUP,
}

# Digit buttons as "num_0".."num_9"; bare digits are key codes
for _digit in range(10):
    KEY_NAME_MAP[f"num_{_digit}"] = KEY_0 + _digit


def get_key(key: Union[int, str]) -> Union[int, str]:
    """Resolve a key code from an integer code or a key name.

    Args:
        key: Key code (e.g. 24), friendly name (e.g. 'volume_up', 'ok')
            or Android name with or without prefix ('DPAD_UP', 'KEYCODE_HOME')

    Returns:
        Integer key code when known, otherwise the ``KEYCODE_`` name for the
        session client to resolve
    """
    if isinstance(key, bool):
        raise ValueError(f"Invalid key: {key!r}")
    if isinstance(key, int):
        return key

    name = str(key).strip()
    if name.isdigit():
        return int(name)

    name_lower = name.lower()
    if name_lower in KEY_NAME_MAP:
        return KEY_NAME_MAP[name_lower]

    compact = name_lower.replace("_", "").replace(" ", "")
    if compact in KEY_NAME_MAP:
        return KEY_NAME_MAP[compact]

    upper = name.upper()
    if upper.startswith("KEYCODE_"):
        upper = upper[len("KEYCODE_"):]
    if upper in ALL_KEYS:
        return ALL_KEYS[upper]

    return f"KEYCODE_{upper}"
