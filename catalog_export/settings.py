from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    commerce_base_url: str = "https://commerce.example.com"
    commerce_rest_prefix: str = "/rest"
    commerce_media_path: str = "/media/catalog/product"

    # OAuth 1.0a (상품/카테고리 API)
    commerce_consumer_key: str = ""
    commerce_consumer_secret: str = ""
    commerce_access_token: str = ""
    commerce_access_token_secret: str = ""

    # 관리자 토큰 (재고 API)
    commerce_admin_token: str = ""

    product_page_size: int = 50
    product_max_pages: int = 25
    product_fields: str = (
        "items[id,sku,name,price,status,type_id,created_at,updated_at,"
        "categories,category_ids,custom_attributes,extension_attributes,media_gallery_entries],total_count"
    )

    category_cache_ttl: float = 300.0  # 개별/목록 카테고리 캐시 TTL (초)
    category_tree_cache_ttl: float = 600.0  # 트리는 변경이 드물어 더 길게 유지
    category_fallback_concurrency: int = 10

    inventory_batch_size: int = 20  # 업스트림 pageSize 상한(50) 이내
    inventory_concurrency: int = 5

    http_timeout: float = 60.0
    http_connect_timeout: float = 10.0
    http_retry_count: int = 3  # tenacity 재시도 횟수
    http_retry_backoff: float = 1.0

    cache_enabled: bool = True
    cache_max_entries: int = 5000

    @field_validator("commerce_base_url")
    @classmethod
    def validate_http_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("URL은 'http://' 또는 'https://'로 시작해야 합니다.")
        return v.rstrip("/")

    @field_validator("product_page_size")
    @classmethod
    def validate_page_size(cls, v: int) -> int:
        if not 1 <= v <= 300:
            raise ValueError("product_page_size는 1에서 300 사이여야 합니다.")
        return v

    @field_validator("inventory_batch_size")
    @classmethod
    def validate_inventory_batch_size(cls, v: int) -> int:
        if not 1 <= v <= 50:
            raise ValueError("inventory_batch_size는 1에서 50 사이여야 합니다.")
        return v

    @field_validator("category_cache_ttl", "category_tree_cache_ttl", "http_retry_backoff")
    @classmethod
    def validate_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("TTL/대기 시간은 0 이상이어야 합니다.")
        return v

    @field_validator(
        "product_max_pages",
        "category_fallback_concurrency",
        "inventory_concurrency",
        "http_retry_count",
    )
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("값은 1 이상이어야 합니다.")
        return v

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", case_sensitive=False)


settings = Settings()
