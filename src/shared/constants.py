import math

# Базовый URL Mapbox Styles API (всегда заканчивается на '/')
MAPBOX_STYLES_BASE = 'https://api.mapbox.com/styles/v1/'

# Аккаунт, которому принадлежит стиль, если не задан явно
DEFAULT_USERNAME = 'mapbox'

# Размер тайла в URL запроса (px) по умолчанию
DEFAULT_TILESIZE = 512

# Логический размер тайла Web Mercator (px)
TILE_SIZE = 256

# Суффикс HiDPI (ретина) в пути тайла
RETINA_SUFFIX = '@2x'

# Имя query-параметра токена доступа
ACCESS_TOKEN_PARAM = 'access_token'

# Плейсхолдеры координат тайла в шаблоне URL
PLACEHOLDER_LEVEL = '{z}'
PLACEHOLDER_X = '{x}'
PLACEHOLDER_Y = '{y}'

# Минимальный уровень приближения по умолчанию
DEFAULT_MINIMUM_LEVEL = 0

# Количество видимых символов API-ключа при маскировке
API_KEY_VISIBLE_PREFIX_LEN = 4

# --- Источники токена доступа
# Переменные окружения, проверяемые по порядку
ACCESS_TOKEN_ENV_VARS = ('MAPBOX_ACCESS_TOKEN', 'API_KEY')
# Файлы с секретами, загружаемые через python-dotenv (первый найденный)
SECRETS_FILE_NAMES = ('.secrets.env', '.env')
# Токен, используемый, если ни один источник не дал своего; для реальной работы задайте собственный
DEFAULT_ACCESS_TOKEN = 'pk.styletiles-default-token'

# --- Атрибуция по умолчанию
DEFAULT_CREDIT_TEXT = '© Mapbox © OpenStreetMap'
DEFAULT_CREDIT_LINK = 'https://www.mapbox.com/about/maps/'

# --- Границы мира Web Mercator (радианы): запад, юг, восток, север
WEB_MERCATOR_MAX_LATITUDE = math.atan(math.sinh(math.pi))
WEB_MERCATOR_RECTANGLE = (
    -math.pi,
    -WEB_MERCATOR_MAX_LATITUDE,
    math.pi,
    WEB_MERCATOR_MAX_LATITUDE,
)

# --- Параметры сетевых запросов по умолчанию
HTTP_TIMEOUT_DEFAULT = 20.0
HTTP_RETRIES_DEFAULT = 4
HTTP_BACKOFF_FACTOR = 1.6

HTTP_OK = 200
HTTP_TOO_MANY_REQUESTS = 429
HTTP_5XX_MIN = 500
HTTP_5XX_MAX = 600

# --- Опции кэша HTTP
HTTP_CACHE_ENABLED = True
# Каталог кэша (относительные пути считаются от домашнего каталога пользователя)
HTTP_CACHE_DIR = '.cache/tiles'
# Время жизни (TTL) в часах
HTTP_CACHE_EXPIRE_HOURS = 168
# Учитывать заголовки Cache-Control/ETag/Last-Modified
HTTP_CACHE_RESPECT_HEADERS = True
# Разрешить использовать устаревший кэш при сетевых ошибках (часы); 0 — запретить
HTTP_CACHE_STALE_IF_ERROR_HOURS = 72

# --- Логирование
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
