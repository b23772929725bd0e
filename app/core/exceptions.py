"""
自定义异常类
"""

from fastapi import HTTPException, status


class CampaignIntelException(Exception):
    """应用基础异常"""

    def __init__(self, message: str, code: str = "GENERAL_ERROR"):
        self.message = message
        self.code = code
        super().__init__(self.message)


class RelayConnectionException(CampaignIntelException):
    """中继连接失败"""

    def __init__(self, message: str = "无法连接转写中继服务"):
        super().__init__(message, "RELAY_CONNECTION_ERROR")


class RelayNotConnectedException(CampaignIntelException):
    """中继未连接时发送控制命令"""

    def __init__(self, message: str = "转写中继尚未连接"):
        super().__init__(message, "RELAY_NOT_CONNECTED")


class SentimentEngineException(CampaignIntelException):
    """情感分析引擎异常"""

    def __init__(self, message: str = "情感分析引擎调用失败"):
        super().__init__(message, "SENTIMENT_ENGINE_ERROR")


class ValidationException(CampaignIntelException):
    """数据验证异常"""

    def __init__(self, message: str = "数据验证失败"):
        super().__init__(message, "VALIDATION_ERROR")


class StoreUnavailableException(CampaignIntelException):
    """转写存储暂不可用"""

    def __init__(self, message: str = "转写存储暂不可用"):
        super().__init__(message, "STORE_UNAVAILABLE")


class ConfigurationException(CampaignIntelException):
    """配置错误异常"""

    def __init__(self, message: str = "配置错误"):
        super().__init__(message, "CONFIGURATION_ERROR")


# HTTP异常映射
def campaign_exception_to_http_exception(exc: CampaignIntelException) -> HTTPException:
    """将应用异常转换为HTTP异常"""

    status_code_mapping = {
        "VALIDATION_ERROR": status.HTTP_400_BAD_REQUEST,
        "RELAY_NOT_CONNECTED": status.HTTP_409_CONFLICT,
        "RELAY_CONNECTION_ERROR": status.HTTP_502_BAD_GATEWAY,
        "SENTIMENT_ENGINE_ERROR": status.HTTP_503_SERVICE_UNAVAILABLE,
        "STORE_UNAVAILABLE": status.HTTP_503_SERVICE_UNAVAILABLE,
        "CONFIGURATION_ERROR": status.HTTP_500_INTERNAL_SERVER_ERROR,
    }

    status_code = status_code_mapping.get(exc.code, status.HTTP_500_INTERNAL_SERVER_ERROR)

    return HTTPException(
        status_code=status_code,
        detail={
            "error": True,
            "code": exc.code,
            "message": exc.message,
            "type": type(exc).__name__
        }
    )
