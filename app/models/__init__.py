# Módulo models: define las clases y estructuras de datos principales de la aplicación (SQLModel/Pydantic)
# Cada tabla es una colección del almacén de documentos; no hay claves foráneas
# entre colecciones (cab_id es una referencia débil), así que el orden no importa

from .cab import Cab, CabCreate, CabUpdate, CabRead, CabStatus, Coordinate
from .trip import Trip, TripCreate, TripUpdate, TripComplete, TripRead, TripStatus, PaymentStatus
from .expense import Expense, ExpenseCreate, ExpenseUpdate, ExpenseRead, ExpenseCategory
from .statistics import TripStatistics, ExpenseStatistics, ReportStatistics, DashboardSummary
