from __future__ import annotations

# Window
WINDOW_WIDTH = 1280
WINDOW_HEIGHT = 720
FPS_CAP = 0  # 0 = uncapped

# App
APP_VERSION = "0.1.0"
LOG_FORMAT = "[voxelworld] %(levelname)s %(name)s: %(message)s"

# World
CHUNK = 16  # voxel cube side
VIEW_RADIUS = 6  # chunks around camera in X/Z
EVICT_MARGIN = 1  # keep/evict hysteresis (chunks beyond VIEW_RADIUS)
WORLD_SEED = "1"
WORLD_BASE_BLOCK = 1  # Block.STONE
CAMERA_INITIAL_POSITION = (0.0, 24.0, 48.0)

# Movement
MOVE_SPEED = 30.0  # world units / sec
MAX_DT = 0.05
MOUSE_SENSITIVITY = 0.0025  # rad per pixel
PITCH_LIMIT = 1.5  # radians

# Remote chunk generator
DEFAULT_SERVER_URL = "http://127.0.0.1:3000"
CHUNK_ENDPOINT = "/api/chunk"
SURFACE_SCALE = 0.06
CAVES_SCALE = 0.18
CAVES_THRESHOLD = 0.70
GRASS_DEPTH = 3
DIRT_DEPTH = 3
CHUNK_CONTENT_TYPE = "application/octet-stream"

# Fetch policy
REQUEST_TIMEOUT_S = 10.0  # per attempt
MAX_RETRIES = 3  # 4 attempts total
RETRY_BASE_DELAY_S = 1.0  # 1s, 2s, 4s
RESPONSE_CACHE_SIZE = 512

# Scheduling
LOAD_STAGGER_S = 0.05
EVICT_STAGGER_S = 0.01

# Local fallback
FALLBACK_GRASS_DEPTH = 2
FALLBACK_DIRT_DEPTH_MAX = 4

# Debug hulls
HULL_COLOR_REMOTE = (0.0, 1.0, 1.0)
HULL_COLOR_LOCAL = (1.0, 0.0, 0.0)
HULL_OPACITY_REMOTE = 0.4
HULL_OPACITY_LOCAL = 0.3

# Rendering
FOV_DEG = 75.0
NEAR = 0.1
FAR = 1000.0
FOG_START = 60.0
FOG_END = 110.0
SUN_DISTANCE = CHUNK * 2
FOG_COLOR = (0.70, 0.80, 0.92)  # also the sky at the horizon
SKY_ZENITH_COLOR = (0.36, 0.56, 0.86)
HUD_MARGIN_PX = 8
