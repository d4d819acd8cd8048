from classbook.stores.interfaces import ProfileReader, ScheduleStore, SettingsReader
from classbook.stores.sqlalchemy_store import SqlAlchemyScheduleStore

__all__ = [
    'ProfileReader',
    'ScheduleStore',
    'SettingsReader',
    'SqlAlchemyScheduleStore',
]
