"""SSE 流式解析流水线。

- decoder: 字节块 → 文本行。
- records: 文本行 → SseRecord。
- assembler: SseRecord → 片段。
- supervisor: 请求生命周期、取消与资源释放。
"""
