"""
促销横幅相关数据模型
"""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field, validator
from enum import Enum

from app.utils.dates import to_naive_local


class BannerType(str, Enum):
    """横幅展示形式"""
    HERO = "hero"
    TOP_BAR = "top_bar"
    SIDEBAR = "sidebar"
    POPUP = "popup"
    BANNER = "banner"
    NOTIFICATION = "notification"


class BannerPosition(str, Enum):
    """横幅位置"""
    TOP = "top"
    BOTTOM = "bottom"
    LEFT = "left"
    RIGHT = "right"
    CENTER = "center"
    FULL_WIDTH = "full_width"


class UserType(str, Enum):
    """访客类型"""
    GUEST = "guest"
    LOGGED_IN = "logged_in"
    NEW_USER = "new_user"
    RETURNING_USER = "returning_user"


class ShowFrequency(str, Enum):
    """展示频率"""
    ONCE = "once"
    DAILY = "daily"
    WEEKLY = "weekly"
    ALWAYS = "always"


class BannerEventKind(str, Enum):
    """横幅追踪事件"""
    IMPRESSION = "impression"
    CLICK = "click"
    CONVERSION = "conversion"


class TargetAudience(BaseModel):
    """目标人群，列表为空表示该维度不限制"""

    user_types: List[UserType] = Field(default_factory=list)
    user_segments: List[str] = Field(default_factory=list, description="vip / premium / standard")
    locations: List[str] = Field(default_factory=list, description="国家代码")
    devices: List[str] = Field(default_factory=list, description="mobile / desktop / tablet")
    browsers: List[str] = Field(default_factory=list)


class DisplayRules(BaseModel):
    """展示规则"""

    show_on_pages: List[str] = Field(default_factory=list)
    hide_on_pages: List[str] = Field(default_factory=list)
    show_after_delay: Optional[int] = Field(None, ge=0, description="延迟展示秒数")
    show_frequency: ShowFrequency = Field(default=ShowFrequency.ALWAYS)
    max_displays: Optional[int] = Field(None, ge=1, description="每位访客最多展示次数")
    min_time_between_displays: Optional[float] = Field(None, ge=0, description="两次展示最小间隔(小时)")


class BannerContent(BaseModel):
    """展示内容"""

    text: Optional[str] = Field(None, max_length=1000)
    button_text: Optional[str] = Field(None, max_length=50)
    button_link: Optional[str] = None
    background_color: Optional[str] = None
    text_color: Optional[str] = None
    button_color: Optional[str] = None
    image_url: Optional[str] = None
    video_url: Optional[str] = None
    icon: Optional[str] = None


class BannerTracking(BaseModel):
    """追踪计数"""

    impressions: int = Field(default=0, ge=0)
    clicks: int = Field(default=0, ge=0)
    conversions: int = Field(default=0, ge=0)
    unique_views: int = Field(default=0, ge=0)


class PromotionalBanner(BaseModel):
    """促销横幅基础模型"""

    banner_id: str = Field(..., description="横幅ID")
    title: str = Field(..., max_length=200)
    subtitle: Optional[str] = Field(None, max_length=300)
    description: Optional[str] = Field(None, max_length=1000)
    banner_type: BannerType = Field(...)
    position: BannerPosition = Field(...)
    priority: int = Field(default=1, ge=1, le=10, description="优先级，越大越优先")
    is_active: bool = Field(default=True)
    start_date: datetime = Field(...)
    end_date: datetime = Field(...)
    target_audience: TargetAudience = Field(default_factory=TargetAudience)
    display_rules: DisplayRules = Field(default_factory=DisplayRules)
    content: BannerContent = Field(default_factory=BannerContent)
    tracking: BannerTracking = Field(default_factory=BannerTracking)
    campaign: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    @validator('start_date', 'end_date')
    def normalize_timezone(cls, v):
        return to_naive_local(v)

    @validator('end_date')
    def validate_active_window(cls, v, values):
        if 'start_date' in values and v <= values['start_date']:
            raise ValueError('结束时间必须晚于开始时间')
        return v

    def is_currently_active(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now()
        return self.is_active and self.start_date <= now <= self.end_date


class BannerCreate(BaseModel):
    """创建横幅模型"""

    title: str = Field(..., max_length=200)
    subtitle: Optional[str] = Field(None, max_length=300)
    description: Optional[str] = Field(None, max_length=1000)
    banner_type: BannerType = Field(...)
    position: BannerPosition = Field(...)
    priority: int = Field(default=1, ge=1, le=10)
    is_active: bool = True
    start_date: datetime = Field(default_factory=datetime.now)
    end_date: datetime = Field(...)
    target_audience: TargetAudience = Field(default_factory=TargetAudience)
    display_rules: DisplayRules = Field(default_factory=DisplayRules)
    content: BannerContent = Field(default_factory=BannerContent)
    campaign: Optional[str] = None
    tags: List[str] = Field(default_factory=list)

    @validator('start_date', 'end_date')
    def normalize_timezone(cls, v):
        return to_naive_local(v)

    @validator('end_date')
    def validate_active_window(cls, v, values):
        if 'start_date' in values and v <= values['start_date']:
            raise ValueError('结束时间必须晚于开始时间')
        return v


class BannerUpdate(BaseModel):
    """更新横幅模型"""

    title: Optional[str] = Field(None, max_length=200)
    subtitle: Optional[str] = Field(None, max_length=300)
    description: Optional[str] = Field(None, max_length=1000)
    priority: Optional[int] = Field(None, ge=1, le=10)
    is_active: Optional[bool] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    target_audience: Optional[TargetAudience] = None
    display_rules: Optional[DisplayRules] = None
    content: Optional[BannerContent] = None
    campaign: Optional[str] = None
    tags: Optional[List[str]] = None

    @validator('start_date', 'end_date')
    def normalize_timezone(cls, v):
        return to_naive_local(v)


class VisitorContext(BaseModel):
    """访客上下文"""

    visitor_id: Optional[str] = Field(None, description="访客标识(cookie或用户ID)")
    is_logged_in: bool = False
    is_new_user: Optional[bool] = None
    segment: Optional[str] = None
    location: Optional[str] = None
    device: Optional[str] = None
    browser: Optional[str] = None

    @property
    def user_types(self) -> set:
        """访客所属的全部类型"""
        types = {UserType.LOGGED_IN if self.is_logged_in else UserType.GUEST}
        if self.is_new_user is True:
            types.add(UserType.NEW_USER)
        elif self.is_new_user is False:
            types.add(UserType.RETURNING_USER)
        return types


class DisplayHistory(BaseModel):
    """访客对单个横幅的展示历史"""

    display_count: int = Field(default=0, ge=0)
    last_displayed_at: Optional[datetime] = None


class BannerEventRequest(BaseModel):
    """横幅追踪事件请求"""

    banner_id: str = Field(..., alias="bannerId")
    action: BannerEventKind = Field(...)
    visitor_id: Optional[str] = Field(None, alias="visitorId")

    class Config:
        populate_by_name = True


class BannerResponse(BaseModel):
    """对外展示的横幅内容"""

    banner_id: str
    title: str
    subtitle: Optional[str]
    banner_type: BannerType
    position: BannerPosition
    priority: int
    show_after_delay: Optional[int]
    content: BannerContent

    @classmethod
    def from_banner(cls, banner: PromotionalBanner) -> "BannerResponse":
        return cls(
            banner_id=banner.banner_id,
            title=banner.title,
            subtitle=banner.subtitle,
            banner_type=banner.banner_type,
            position=banner.position,
            priority=banner.priority,
            show_after_delay=banner.display_rules.show_after_delay,
            content=banner.content
        )
