import os
from decimal import Decimal
from dotenv import load_dotenv

# Загрузка .env
load_dotenv()

# База данных
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///staking.db")

# Логирование
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# Unilevel
UNILEVEL_MAX_DEPTH = int(os.getenv("UNILEVEL_MAX_DEPTH", "10"))

# Team volume is propagated further up than the commission depth
VOLUME_MAX_DEPTH = int(os.getenv("VOLUME_MAX_DEPTH", "50"))

# Стейкинг
MIN_STAKE_AMOUNT = Decimal(os.getenv("MIN_STAKE_AMOUNT", "100"))

# Presale -> stake conversion
PRESALE_STAKE_CYCLE_DAYS = int(os.getenv("PRESALE_STAKE_CYCLE_DAYS", "365"))
PRESALE_STAKE_DAILY_RATE = Decimal(os.getenv("PRESALE_STAKE_DAILY_RATE", "1.00"))

# Сколько раз повторять обработку стейка при конфликте версий
COMMIT_RETRIES = int(os.getenv("COMMIT_RETRIES", "3"))

# Имя задачи в журнале запусков
DISTRIBUTION_JOB_NAME = "distribute-daily-rewards"
