"""
事件處理器基類

定義演化過程中事件處理的基本接口。
"""


class EventHandler:
    """
    事件處理器基類

    The engine calls ``on_<event>`` for every registered handler. Failures
    inside a handler are logged by the engine and never abort training.
    """

    def __init__(self):
        self.name = "base_handler"
        self.engine = None

    def set_engine(self, engine):
        """設置演化引擎引用"""
        self.engine = engine

    def on_training_start(self, **kwargs):
        """訓練開始事件"""
        pass

    def on_generation_complete(self, **kwargs):
        """世代完成事件"""
        pass

    def on_training_complete(self, **kwargs):
        """訓練完成事件"""
        pass

    def on_training_error(self, **kwargs):
        """訓練錯誤事件"""
        pass
