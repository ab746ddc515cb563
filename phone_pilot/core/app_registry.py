"""App name <-> package lookup used by Launch actions.

The model names apps by their display name ("微信", "Settings").  The
device launches packages ("com.tencent.mm").  ``AppRegistry`` maps
between the two, case-insensitively, with a built-in table of common
apps that callers can extend or override.
"""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)

# Display name -> Android package.  Several names may share a package.
DEFAULT_APP_PACKAGES: dict[str, str] = {
    # Social & messaging
    "微信": "com.tencent.mm",
    "WeChat": "com.tencent.mm",
    "QQ": "com.tencent.mobileqq",
    "微博": "com.sina.weibo",
    "Weibo": "com.sina.weibo",
    "小红书": "com.xingin.xhs",
    "Xiaohongshu": "com.xingin.xhs",
    "抖音": "com.ss.android.ugc.aweme",
    "Douyin": "com.ss.android.ugc.aweme",
    "快手": "com.smile.gifmaker",
    "知乎": "com.zhihu.android",
    "Telegram": "org.telegram.messenger",
    "WhatsApp": "com.whatsapp",
    # Shopping & food
    "淘宝": "com.taobao.taobao",
    "Taobao": "com.taobao.taobao",
    "京东": "com.jingdong.app.mall",
    "JD": "com.jingdong.app.mall",
    "拼多多": "com.xunmeng.pinduoduo",
    "美团": "com.sankuai.meituan",
    "Meituan": "com.sankuai.meituan",
    "饿了么": "me.ele",
    "大众点评": "com.dianping.v1",
    # Travel & maps
    "高德地图": "com.autonavi.minimap",
    "百度地图": "com.baidu.BaiduMap",
    "滴滴出行": "com.sdu.didi.psnger",
    "携程": "ctrip.android.view",
    "12306": "com.MobileTicket",
    "Google Maps": "com.google.android.apps.maps",
    # Media
    "哔哩哔哩": "tv.danmaku.bili",
    "bilibili": "tv.danmaku.bili",
    "网易云音乐": "com.netease.cloudmusic",
    "QQ音乐": "com.tencent.qqmusic",
    "YouTube": "com.google.android.youtube",
    # Payments
    "支付宝": "com.eg.android.AlipayGphone",
    "Alipay": "com.eg.android.AlipayGphone",
    # System
    "设置": "com.android.settings",
    "Settings": "com.android.settings",
    "相机": "com.android.camera",
    "Camera": "com.android.camera",
    "浏览器": "com.android.browser",
    "Chrome": "com.android.chrome",
    "Gmail": "com.google.android.gm",
    "Play Store": "com.android.vending",
}


class AppRegistry:
    """Case-insensitive mapping between app display names and packages.

    Args:
        packages: Extra or overriding ``name -> package`` entries.
        include_defaults: Start from ``DEFAULT_APP_PACKAGES`` when True.
    """

    def __init__(
        self,
        packages: dict[str, str] | None = None,
        include_defaults: bool = True,
    ) -> None:
        self._by_name: dict[str, str] = {}
        self._names: dict[str, str] = {}
        if include_defaults:
            for name, package in DEFAULT_APP_PACKAGES.items():
                self.register(name, package)
        for name, package in (packages or {}).items():
            self.register(name, package)

    def register(self, name: str, package: str) -> None:
        """Add or override one mapping.

        The first name registered for a package becomes its display
        name for reverse lookups.
        """
        self._by_name[self._key(name)] = package
        self._names.setdefault(package, name)

    def get_package(self, name: str) -> str | None:
        """Return the package for a display name, or ``None``."""
        return self._by_name.get(self._key(name))

    def get_app_name(self, package: str) -> str | None:
        """Return the display name for a package, or ``None``."""
        return self._names.get(package)

    def resolve(self, name: str) -> str:
        """Resolve a display name to a package, falling back to *name*.

        Unknown names are returned unchanged so that the model can name
        a package directly.
        """
        package = self.get_package(name)
        if package is None:
            logger.debug("App %r not in registry, launching as-is", name)
            return name
        return package

    @staticmethod
    def _key(name: str) -> str:
        return name.strip().casefold()

    def __len__(self) -> int:
        return len(self._by_name)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self._key(name) in self._by_name
