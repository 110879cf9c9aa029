from enum import Enum

# Версия кэша (отдаётся по команде getVersion)
CACHE_VERSION = 'mapa-entregas-v5'

# Имена хранилищ (версионируются; устаревшие удаляются при активации)
STATIC_CACHE_NAME = CACHE_VERSION
TILE_CACHE_NAME = 'mapbox-tiles-v1'
META_CACHE_NAME = 'mapbox-meta-v1'
HTML_CACHE_NAME = 'mapa-html-v3'

# Фиксированный ключ резервной HTML-страницы
OFFLINE_FALLBACK_KEY = 'offline-fallback'


class TierKind(str, Enum):
    """Логическое назначение хранилища."""

    STATIC_ASSETS = 'static-assets'
    TILE_DATA = 'tile-data'
    MAP_METADATA = 'map-api-metadata'
    PAGE_HTML = 'page-html'


# Базовый URL Mapbox REST API
MAPBOX_API_BASE = 'https://api.mapbox.com'
MAPBOX_STYLES_BASE = f'{MAPBOX_API_BASE}/styles/v1'
MAPBOX_TILESETS_BASE = f'{MAPBOX_API_BASE}/v4'

# Схема ссылок на стили провайдера
MAPBOX_SCHEME = 'mapbox'

# Хосты провайдера тайлов
MAP_PROVIDER_HOSTS = ('tiles.mapbox.com', 'api.mapbox.com')
# Фрагменты пути, по которым запрос относится к провайдеру
MAP_PROVIDER_PATH_MARKERS = ('/v4/', '/styles/')
# Фрагменты пути тайла
TILE_PATH_MARKERS = ('/v4/', '/tiles/')
# Расширения тайлов (растр и вектор)
TILE_EXTENSIONS = ('.pbf', '.mvt', '.png', '.pngraw', '.jpg', '.jpeg', '.webp')

# Хосты CDN со статикой
STATIC_CDN_HOSTS = (
    'cdn.jsdelivr.net',
    'cdnjs.cloudflare.com',
    'fonts.googleapis.com',
    'fonts.gstatic.com',
    'unpkg.com',
)

# Хост backend API (данные идут только из сети)
BACKEND_API_HOSTS = ('supabase.co',)

# Схемы расширений браузера (не кэшируются)
EXTENSION_SCHEMES = ('chrome-extension', 'moz-extension')

# Статика, прогреваемая при установке
CDN_ASSETS = (
    'https://cdn.jsdelivr.net/npm/mapbox-gl@3.4.0/dist/mapbox-gl.min.css',
    'https://cdn.jsdelivr.net/npm/mapbox-gl@3.4.0/dist/mapbox-gl.min.js',
    'https://fonts.googleapis.com/css2?family=Plus+Jakarta+Sans:wght@400;500;600;700&display=swap',
    'https://cdn.jsdelivr.net/npm/xlsx@0.18.5/dist/xlsx.full.min.js',
    'https://cdn.jsdelivr.net/npm/jsqr@1.4.0/dist/jsQR.min.js',
    'https://cdn.jsdelivr.net/npm/@supabase/supabase-js@2/dist/umd/supabase.min.js',
)

# Лимит записей в хранилище тайлов
MAX_TILE_CACHE_SIZE = 500

# Ширина пула загрузки при предзагрузке области
PREFETCH_CONCURRENCY = 10

# Публиковать прогресс каждые N завершённых загрузок
PROGRESS_EVERY = 25

# Таймаут HTTP-запроса (секунды)
HTTP_TIMEOUT_DEFAULT = 20.0

# Статус синтетического ответа при отсутствии сети
HTTP_SERVICE_UNAVAILABLE = 503
HTTP_OK = 200
HTTP_2XX_MIN = 200
HTTP_2XX_MAX = 300

# Каталог хранилищ (относительный путь разрешается в профиль пользователя)
CACHE_DIR = '.cache/offline'
# Переменная окружения для переопределения каталога
CACHE_DIR_ENV_VAR = 'OFFLINE_CACHE_DIR'

# Адрес прокси
PROXY_HOST = '127.0.0.1'
PROXY_PORT = 8765
# Служебный префикс путей прокси
PROXY_CONTROL_PREFIX = '/__offline__'

# Корневой URL приложения (scope)
APP_SCOPE_URL = 'http://localhost:8000/'

# Ёмкость очереди подписчика на события
SUBSCRIBER_QUEUE_SIZE = 256

# Количество видимых символов токена при маскировке
TOKEN_VISIBLE_PREFIX_LEN = 4

# Повторы загрузки при предзагрузке (429/5xx и сетевые ошибки)
PREFETCH_RETRIES = 2
# Основание экспоненциальной задержки между повторами (секунды)
HTTP_BACKOFF_FACTOR = 1.6
HTTP_TOO_MANY_REQUESTS = 429
HTTP_5XX_MIN = 500
HTTP_5XX_MAX = 600

# Пути метаданных (спрайты, шрифты): не тайлы, даже при расширении .png/.pbf
METADATA_PATH_MARKERS = ('/sprite', '/fonts/', '/glyphs/')
