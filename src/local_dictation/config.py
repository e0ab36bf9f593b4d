# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
Configuration management for Local Dictation.

Loads settings from ~/.dictation/config.toml with sensible defaults.
"""

import re
import sys
import threading
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

CONFIG_DIR = Path.home() / ".dictation"
CONFIG_FILE = CONFIG_DIR / "config.toml"

# Modifier names accepted in [hotkey] modifiers
VALID_MODIFIERS = ("ctrl", "shift", "alt", "cmd")

TRANSCRIPTION_ENGINES = ("whisper_cli",)
REFINEMENT_BACKENDS = ("llama_cli",)

# stderr fragments that mean the GPU ran out of memory or failed to initialize.
# A match triggers the single CPU-only retry of the refinement backend.
DEFAULT_GPU_ERROR_PATTERNS = [
    "out of memory",
    "CUDA error",
    "cudaMalloc failed",
    "failed to allocate",
    "ErrorOutOfDeviceMemory",
    "ggml_metal_init: error",
    "ggml_vulkan: error",
]

# Regexes for engine banner/timing lines that llama-cli writes to stdout
DEFAULT_PREAMBLE_PATTERNS = [
    r"^llama_",
    r"^llm_load_",
    r"^ggml_",
    r"^main:",
    r"^build:",
    r"^system_info:",
    r"^sampler",
    r"^generate:",
    r"^load_backend:",
    r"^\s*\[\s*end of text\s*\]\s*$",
    r"^>\s*EOF by user",
]

# Default configuration
DEFAULT_CONFIG = """# Local Dictation Configuration
# Edit this file to customize behavior

[hotkey]
# Modifier keys that must be held: any of "ctrl", "shift", "alt", "cmd"
modifiers = ["ctrl", "shift"]

# Main key of the chord (a letter, digit or f1-f12)
key = "d"

[transcription]
# Transcription engine: "whisper_cli" (whisper.cpp command line)
engine = "whisper_cli"

# Path or name of the whisper.cpp executable
cli_path = "whisper-cli"

# GGML model file
model_path = "~/.dictation/models/ggml-small.bin"

# Language code (en, de, fr, ...) or "auto" for detection
language = "auto"

# Seconds before the engine is killed
timeout = 60

[refinement]
# Reformat transcripts with a local language model (llama.cpp)
enabled = false

# Refinement backend: "llama_cli"
backend = "llama_cli"

# Path or name of the llama.cpp executable
cli_path = "llama-cli"

# GGUF model file
model_path = ""

# Seconds before the model is killed and the raw transcript is used (1-30)
timeout = 5

# Offload layers to the GPU; retried once on CPU when the GPU fails
gpu_acceleration = true

# Sampling parameters
temperature = 0.0
top_p = 0.25
repeat_penalty = 1.05
max_tokens = 512

# Expand abbreviations from a glossary file ("abbr = expansion" per line)
use_glossary = false
glossary_path = ""

# stderr fragments (case-insensitive) that trigger the CPU-only retry
gpu_error_patterns = [
    "out of memory",
    "CUDA error",
    "cudaMalloc failed",
    "failed to allocate",
    "ErrorOutOfDeviceMemory",
    "ggml_metal_init: error",
    "ggml_vulkan: error",
]

# Regexes for engine output lines that are dropped from the result
preamble_patterns = [
    '^llama_',
    '^llm_load_',
    '^ggml_',
    '^main:',
    '^build:',
    '^system_info:',
    '^sampler',
    '^generate:',
    '^load_backend:',
    '^\\s*\\[\\s*end of text\\s*\\]\\s*$',
    '^>\\s*EOF by user',
]

[audio]
# Sample rate in Hz (whisper.cpp expects 16000)
sample_rate = 16000

# Recordings shorter than this (seconds) are discarded
min_duration = 0.3

# Maximum recording duration in seconds (0 = no limit)
max_duration = 0

[clipboard]
# Seconds to wait before the single clipboard retry
retry_delay = 0.1

[history]
# Where transcripts are stored as Markdown files
directory = "~/.dictation/history"

[ui]
# Show desktop notifications (otherwise only the log shows results)
notifications_enabled = true

[logging]
# Log transcript text and full backend stderr
verbose = false
"""


@dataclass
class HotkeyConfig:
    modifiers: List[str] = field(default_factory=lambda: ["ctrl", "shift"])
    key: str = "d"

    @property
    def chord(self) -> str:
        return "+".join([*self.modifiers, self.key])


@dataclass
class TranscriptionConfig:
    engine: str = "whisper_cli"
    cli_path: str = "whisper-cli"
    model_path: str = "~/.dictation/models/ggml-small.bin"
    language: str = "auto"
    timeout: float = 60

    @property
    def model(self) -> Path:
        return Path(self.model_path).expanduser()


@dataclass
class RefinementConfig:
    """Language-model refinement settings."""
    enabled: bool = False
    backend: str = "llama_cli"
    cli_path: str = "llama-cli"
    model_path: str = ""
    timeout: float = 5
    gpu_acceleration: bool = True
    temperature: float = 0.0
    top_p: float = 0.25
    repeat_penalty: float = 1.05
    max_tokens: int = 512
    use_glossary: bool = False
    glossary_path: str = ""
    gpu_error_patterns: List[str] = field(default_factory=lambda: list(DEFAULT_GPU_ERROR_PATTERNS))
    preamble_patterns: List[str] = field(default_factory=lambda: list(DEFAULT_PREAMBLE_PATTERNS))

    @property
    def model(self) -> Path:
        return Path(self.model_path).expanduser()

    @property
    def glossary(self) -> Optional[Path]:
        if not self.glossary_path:
            return None
        return Path(self.glossary_path).expanduser()


@dataclass
class AudioConfig:
    sample_rate: int = 16000
    min_duration: float = 0.3
    max_duration: int = 0


@dataclass
class ClipboardConfig:
    retry_delay: float = 0.1


@dataclass
class HistoryConfig:
    directory: str = "~/.dictation/history"

    @property
    def path(self) -> Path:
        return Path(self.directory).expanduser()


@dataclass
class UIConfig:
    notifications_enabled: bool = True


@dataclass
class LoggingConfig:
    verbose: bool = False


@dataclass
class Config:
    hotkey: HotkeyConfig = field(default_factory=HotkeyConfig)
    transcription: TranscriptionConfig = field(default_factory=TranscriptionConfig)
    refinement: RefinementConfig = field(default_factory=RefinementConfig)
    audio: AudioConfig = field(default_factory=AudioConfig)
    clipboard: ClipboardConfig = field(default_factory=ClipboardConfig)
    history: HistoryConfig = field(default_factory=HistoryConfig)
    ui: UIConfig = field(default_factory=UIConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def load_config() -> Config:
    """Load configuration from file, creating default if missing."""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    try:
        CONFIG_DIR.chmod(0o700)
    except OSError:
        pass

    # Create default config if it doesn't exist
    if not CONFIG_FILE.exists():
        CONFIG_FILE.write_text(DEFAULT_CONFIG, encoding='utf-8')

    # Load and parse config
    data = {}
    try:
        with open(CONFIG_FILE, 'rb') as f:
            data = tomllib.load(f)
    except Exception as e:
        print(f"Config parse error: {e}", file=sys.stderr)

    # Build config object with defaults
    config = Config()

    # Hotkey settings
    if 'hotkey' in data:
        config.hotkey = HotkeyConfig(
            modifiers=data['hotkey'].get('modifiers', config.hotkey.modifiers),
            key=data['hotkey'].get('key', config.hotkey.key),
        )

    # Transcription settings
    if 'transcription' in data:
        section = data['transcription']
        config.transcription = TranscriptionConfig(
            engine=section.get('engine', config.transcription.engine),
            cli_path=section.get('cli_path', config.transcription.cli_path),
            model_path=section.get('model_path', config.transcription.model_path),
            language=section.get('language', config.transcription.language),
            timeout=section.get('timeout', config.transcription.timeout),
        )

    # Refinement settings
    if 'refinement' in data:
        section = data['refinement']
        defaults = config.refinement
        config.refinement = RefinementConfig(
            enabled=section.get('enabled', defaults.enabled),
            backend=section.get('backend', defaults.backend),
            cli_path=section.get('cli_path', defaults.cli_path),
            model_path=section.get('model_path', defaults.model_path),
            timeout=section.get('timeout', defaults.timeout),
            gpu_acceleration=section.get('gpu_acceleration', defaults.gpu_acceleration),
            temperature=section.get('temperature', defaults.temperature),
            top_p=section.get('top_p', defaults.top_p),
            repeat_penalty=section.get('repeat_penalty', defaults.repeat_penalty),
            max_tokens=section.get('max_tokens', defaults.max_tokens),
            use_glossary=section.get('use_glossary', defaults.use_glossary),
            glossary_path=section.get('glossary_path', defaults.glossary_path),
            gpu_error_patterns=section.get('gpu_error_patterns', defaults.gpu_error_patterns),
            preamble_patterns=section.get('preamble_patterns', defaults.preamble_patterns),
        )

    # Audio settings
    if 'audio' in data:
        config.audio = AudioConfig(
            sample_rate=data['audio'].get('sample_rate', config.audio.sample_rate),
            min_duration=data['audio'].get('min_duration', config.audio.min_duration),
            max_duration=data['audio'].get('max_duration', config.audio.max_duration),
        )

    # Clipboard settings
    if 'clipboard' in data:
        config.clipboard = ClipboardConfig(
            retry_delay=data['clipboard'].get('retry_delay', config.clipboard.retry_delay),
        )

    # History settings
    if 'history' in data:
        config.history = HistoryConfig(
            directory=data['history'].get('directory', config.history.directory),
        )

    # UI settings
    if 'ui' in data:
        config.ui = UIConfig(
            notifications_enabled=data['ui'].get('notifications_enabled', config.ui.notifications_enabled),
        )

    # Logging settings
    if 'logging' in data:
        config.logging = LoggingConfig(
            verbose=data['logging'].get('verbose', config.logging.verbose),
        )

    # Validate and sanitize config values
    _validate_config(config)

    return config


def _valid_patterns(patterns, name: str, compile_regex: bool) -> Optional[List[str]]:
    """Return the usable string patterns, or None if the value is not a list."""
    if not isinstance(patterns, list):
        print(f"Config warning: {name} must be a list of strings, using defaults", file=sys.stderr)
        return None
    kept = []
    for pattern in patterns:
        if not isinstance(pattern, str) or not pattern:
            print(f"Config warning: ignoring {name} entry {pattern!r}", file=sys.stderr)
            continue
        if compile_regex:
            try:
                re.compile(pattern)
            except re.error as e:
                print(f"Config warning: ignoring invalid regex in {name} '{pattern}': {e}", file=sys.stderr)
                continue
        kept.append(pattern)
    return kept


def _validate_config(config: Config):
    """Validate and sanitize configuration values."""
    # Hotkey validation
    modifiers = config.hotkey.modifiers
    if (not isinstance(modifiers, list) or not modifiers
            or any(str(m).lower() not in VALID_MODIFIERS for m in modifiers)):
        print(f"Config warning: Invalid hotkey modifiers {modifiers!r}, using ['ctrl', 'shift']", file=sys.stderr)
        config.hotkey.modifiers = ["ctrl", "shift"]
    else:
        config.hotkey.modifiers = list(dict.fromkeys(str(m).lower() for m in modifiers))

    key = str(config.hotkey.key).lower()
    if not re.fullmatch(r"[a-z0-9]|f([1-9]|1[0-2])", key):
        print(f"Config warning: Invalid hotkey key '{config.hotkey.key}', using 'd'", file=sys.stderr)
        key = "d"
    config.hotkey.key = key

    # Transcription validation
    if config.transcription.engine not in TRANSCRIPTION_ENGINES:
        print(f"Config warning: Invalid transcription engine '{config.transcription.engine}', using 'whisper_cli'", file=sys.stderr)
        config.transcription.engine = "whisper_cli"

    if not isinstance(config.transcription.timeout, (int, float)) or config.transcription.timeout <= 0:
        print("Config warning: transcription timeout must be positive, using 60", file=sys.stderr)
        config.transcription.timeout = 60

    if not config.transcription.language:
        config.transcription.language = "auto"

    # Refinement validation
    refinement = config.refinement
    if refinement.backend not in REFINEMENT_BACKENDS:
        print(f"Config warning: Invalid refinement backend '{refinement.backend}', using 'llama_cli'", file=sys.stderr)
        refinement.backend = "llama_cli"

    if not isinstance(refinement.timeout, (int, float)) or not 1 <= refinement.timeout <= 30:
        print("Config warning: refinement timeout must be between 1 and 30, using 5", file=sys.stderr)
        refinement.timeout = 5

    if not 0.0 <= refinement.temperature <= 2.0:
        print("Config warning: temperature must be between 0.0 and 2.0, using 0.0", file=sys.stderr)
        refinement.temperature = 0.0

    if not 0.0 < refinement.top_p <= 1.0:
        print("Config warning: top_p must be between 0.0 and 1.0, using 0.25", file=sys.stderr)
        refinement.top_p = 0.25

    if refinement.repeat_penalty <= 0:
        print("Config warning: repeat_penalty must be positive, using 1.05", file=sys.stderr)
        refinement.repeat_penalty = 1.05

    if not isinstance(refinement.max_tokens, int) or refinement.max_tokens < 1:
        print("Config warning: max_tokens must be a positive integer, using 512", file=sys.stderr)
        refinement.max_tokens = 512

    gpu_patterns = _valid_patterns(refinement.gpu_error_patterns, "gpu_error_patterns", compile_regex=False)
    refinement.gpu_error_patterns = list(DEFAULT_GPU_ERROR_PATTERNS) if gpu_patterns is None else gpu_patterns

    preamble = _valid_patterns(refinement.preamble_patterns, "preamble_patterns", compile_regex=True)
    refinement.preamble_patterns = list(DEFAULT_PREAMBLE_PATTERNS) if preamble is None else preamble

    if refinement.enabled and not refinement.model_path:
        print("Config warning: refinement enabled without model_path, disabling refinement", file=sys.stderr)
        refinement.enabled = False

    if refinement.use_glossary and not refinement.glossary_path:
        print("Config warning: use_glossary set without glossary_path, disabling glossary", file=sys.stderr)
        refinement.use_glossary = False

    # Audio validation
    if config.audio.sample_rate <= 0:
        print("Config warning: sample_rate must be positive, using 16000", file=sys.stderr)
        config.audio.sample_rate = 16000

    # whisper.cpp only accepts 16 kHz input
    if config.audio.sample_rate != 16000:
        print(f"Config warning: sample_rate {config.audio.sample_rate} is not supported by whisper.cpp, using 16000", file=sys.stderr)
        config.audio.sample_rate = 16000

    if config.audio.min_duration < 0:
        config.audio.min_duration = 0

    if isinstance(config.audio.max_duration, float):
        config.audio.max_duration = int(config.audio.max_duration)
    if config.audio.max_duration < 0:
        print("Config warning: max_duration cannot be negative, using 0 (unlimited)", file=sys.stderr)
        config.audio.max_duration = 0

    # Clipboard validation
    if not 0.0 <= config.clipboard.retry_delay <= 5.0:
        print("Config warning: clipboard retry_delay must be between 0 and 5 seconds, using 0.1", file=sys.stderr)
        config.clipboard.retry_delay = 0.1

    # History validation
    if not config.history.directory:
        print("Config warning: history directory is empty, using '~/.dictation/history'", file=sys.stderr)
        config.history.directory = "~/.dictation/history"


# Global config instance with thread-safe initialization
_config: Optional[Config] = None
_config_lock = threading.Lock()


def get_config() -> Config:
    """Get the global configuration instance (thread-safe)."""
    global _config
    if _config is None:
        with _config_lock:
            # Double-check locking pattern for thread safety
            if _config is None:
                _config = load_config()
    return _config
