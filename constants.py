# Constants for Recrop application

CROP_DEFAULT_WIDTH = 500
CROP_DEFAULT_HEIGHT = 500
CROP_DEFAULT_X = 300
CROP_DEFAULT_Y = 100

# ffmpeg argument tokens
DECODER = "libopenh264"
ENCODER = "libopenh264"
STRICT_LEVEL = "2"
MAX_MUXING_QUEUE_SIZE = 512
PROGRESS_MARKER = "time="

CODEC_CHECK_TIMEOUT = 2
FFPROBE_TIMEOUT = 10
LOG_TAIL_LINES = 20
PROCESS_STOP_TIMEOUT = 5
SYSTEM_METRICS_UPDATE_INTERVAL = 0.5

ASSET_DIR = "assets"
SAMPLE_ASSET = "sample.mp4"
INPUT_FILE_NAME = "recrop-input.mp4"
OUTPUT_FILE_NAME = "recrop-output.mp4"
VIDEO_SUBDIR = "Recrop"

DEFAULT_WINDOW_WIDTH = 1000
DEFAULT_WINDOW_HEIGHT = 600
