"""聊天侧边栏的快捷提问。

按当前页面给出几条建议问题，未知页面退回首页的建议。
"""

from typing import Dict, List, Optional


QUICK_PROMPTS: Dict[str, List[str]] = {
    "/queue": ["Why this recommendation?", "What if I defer?", "Change the amount"],
    "/cashflow": ["Why does balance drop?", "What's my runway?", "Revenue breakdown"],
    "/bills": ["Which can I negotiate?", "What's overdue?", "Show sources"],
    "/disputes": ["Draft a response", "Show evidence", "Case timeline"],
    "/legal": ["Next deadline?", "Any contradictions?", "Case status"],
    "/": ["Financial summary", "What needs attention?", "Open issues"],
}


def quick_prompts(page: Optional[str] = None) -> List[str]:
    """返回页面对应的快捷提问（副本，可随意修改）。"""

    return list(QUICK_PROMPTS.get(page or "/", QUICK_PROMPTS["/"]))
