from sqlalchemy.orm import DeclarativeBase, sessionmaker
from sqlalchemy import create_engine

class Base(DeclarativeBase): pass

def make_sessionmaker(dsn: str):
    kwargs = {'pool_pre_ping': True}
    if dsn.startswith('sqlite'):
        kwargs['connect_args'] = {'check_same_thread': False}
        if ':memory:' in dsn or dsn.rstrip('/') == 'sqlite:':
            from sqlalchemy.pool import StaticPool
            kwargs['poolclass'] = StaticPool
    engine = create_engine(dsn, **kwargs)
    return engine, sessionmaker(bind=engine, autoflush=False, autocommit=False)
