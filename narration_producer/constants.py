"""All magic numbers and configuration constants."""

# Segmentation
PARAGRAPH_DELIMITER = "$"           # reserved delimiter embedded by upstream text preparation
FALLBACK_MIN_CHARS = 500            # chars — blank-line fallback only applies above this length
MAX_PARAGRAPHS = 15                 # units beyond this are dropped with a warning

# Job audio format
SAMPLE_RATE = 44100
CHANNELS = 2
SAMPLE_WIDTH = 2                    # bytes — 16-bit PCM

# Mixing
NARRATION_GAIN = 0.9                # slightly below full scale so the background stays perceptible
BACKGROUND_VOLUME = 0.3             # linear background gain
BACKGROUND_FLOOR = 0.3              # background gain never drops below this while holding
FADE_IN_SECONDS = 2.0
FADE_OUT_SECONDS = 3.0
CROSSFADE_SECONDS = 3.0             # region crossfade in whole-narration mode
REGION_OVERLAP_SECONDS = 1.0        # background keeps playing past the next region start

# Sequencing
PARAGRAPH_GAP_SECONDS = 7.0         # silence between paragraphs (client preset)
BATCH_PARAGRAPH_GAP_SECONDS = 10.0  # silence between paragraphs (batch preset)

# Music library
MUSIC_INDEX_MIN = 1
MUSIC_INDEX_MAX = 7
FALLBACK_ASSET = ""                 # last-resort background file; empty uses the generated drone
GENERATED_FALLBACK_REF = "generated:ambient-drone"
FALLBACK_DRONE_SECONDS = 30.0       # length of one loop of the generated drone
MUSIC_LIBRARY_DIR = "assets/music"  # <Category>/<Category>_<n>.mp3 under this root

# External calls
CALL_TIMEOUT_SECONDS = 60.0
RETRY_COUNT = 3                     # max attempts per external call
RETRY_BASE_DELAY = 1.0              # seconds — base delay for exponential backoff
MAX_WORKERS = 4

# Narration
TTS_VOICE = "en-US-AriaNeural"
TTS_RATE = "-10%"                   # speech rate: -10% = 10% slower than default

# Classification
LLM_MODEL = "gpt-3.5-turbo"
LLM_TEMPERATURE = 0.3

# Manifest
EPISODE_TITLE_CHARS = 20            # title is the opening of the first paragraph

# Output
OUTPUT_FORMAT = "wav"
OUTPUT_BITRATE = "192k"             # MP3 output bitrate
OUTPUT_DIR = "output"
VERSION = "0.1.0"
