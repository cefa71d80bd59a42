from setuptools import find_packages, setup

setup(
    name='moonbridge',
    version='1.0.0',
    description='Moonraker/Klipper client sync daemon (WebSocket JSON-RPC)',
    author='isantolin',
    author_email='',
    packages=find_packages(exclude=['tests', 'tests.*']),
    python_requires='>=3.11',
    install_requires=[
        'msgspec',
        'transitions',
        'tenacity',
        'marshmallow',
        'prometheus-client',
        'uvloop',
        'websockets',
    ],
    extras_require={
        'test': [
            'pytest',
            'pytest-asyncio',
        ],
    },
    entry_points={
        'console_scripts': [
            'moonbridge=moonbridge.daemon:main',
        ],
    },
    classifiers=[
        'Programming Language :: Python :: 3',
        'Operating System :: POSIX :: Linux',
    ],
)
