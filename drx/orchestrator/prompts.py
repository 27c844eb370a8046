from ..providers.base import ChatMessage

HISTORY_WINDOW = 6

SYSTEM_PROMPT = """أنت drx3، مساعد ذكي متخصص في الذكاء الاصطناعي والبرمجة والتكنولوجيا.

- تجيب باللغة العربية أساساً مع دعم الإنجليزية عند الحاجة
- تقدم إجابات منظمة ودقيقة مع أمثلة عملية عند الحاجة
- تستخدم العناوين والقوائم وصناديق الكود مع تحديد اللغة"""

THINKING_HINT = "\n- فكر خطوة بخطوة قبل الإجابة وأظهر عملية التفكير"
SEARCH_HINT = "\n- ابحث في معرفتك بعمق للحصول على أفضل إجابة شاملة"

HEALTH_PROBE_PROMPT = "اختبار الاتصال"
HEALTH_PROBE_MAX_TOKENS = 16

EMPTY_MESSAGE = "الرسالة مطلوبة ويجب أن تكون نصاً"
NO_PROVIDER_MESSAGE = "لا توجد مفاتيح API صالحة متاحة"
TEMPORARY_FAILURE_MESSAGE = "عذراً، أواجه مشكلة تقنية مؤقتة. يرجى المحاولة مرة أخرى."
REQUEST_FAILED_MESSAGE = "حدث خطأ في معالجة طلبك. يرجى المحاولة مرة أخرى."


def create_system_prompt(enable_thinking: bool = False, enable_search: bool = False) -> str:
    prompt = SYSTEM_PROMPT
    if enable_thinking:
        prompt += THINKING_HINT
    if enable_search:
        prompt += SEARCH_HINT
    return prompt


def build_messages(
    message: str,
    history: list[ChatMessage],
    enable_thinking: bool = False,
    enable_search: bool = False,
) -> list[ChatMessage]:
    """System prompt, then the most recent history turns in order, then the new user message."""
    recent = history[-HISTORY_WINDOW:]
    messages: list[ChatMessage] = [
        {"role": "system", "content": create_system_prompt(enable_thinking, enable_search)},
    ]
    messages.extend({"role": h["role"], "content": h["content"]} for h in recent)
    messages.append({"role": "user", "content": message})
    return messages
