import enum

class Role(str, enum.Enum):
    admin = "admin"
    encargado = "encargado"
    operador = "operador"
    solicitante = "solicitante"

class MovementType(str, enum.Enum):
    entrada = "entrada"
    salida = "salida"
    ajuste = "ajuste"

class POStatus(str, enum.Enum):
    pendiente = "pendiente"
    recibida = "recibida"
    cancelada = "cancelada"

class StockStatus(str, enum.Enum):
    sin_stock = "sin-stock"
    critico = "critico"
    bajo = "bajo"
    normal = "normal"
    sobre_stock = "sobre-stock"
