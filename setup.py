from setuptools import setup, find_packages

# Read version from sockwatch/VERSION
with open('sockwatch/VERSION') as f:
    VERSION = f.read().strip()

setup(
    name='sockwatch',
    version=VERSION,
    description='Live socket inspector for Linux: sockets, owning processes and users from /proc',
    long_description=open('README.md', encoding='utf-8').read(),
    long_description_content_type='text/markdown',
    license='MIT',
    classifiers=[
        'Development Status :: 4 - Beta',
        'Intended Audience :: System Administrators',
        'License :: OSI Approved :: MIT License',
        'Operating System :: POSIX :: Linux',
        'Programming Language :: Python :: 3',
        'Topic :: System :: Networking :: Monitoring',
    ],
    python_requires='>=3.8',
    packages=find_packages(exclude=['tests']),
    package_data={'sockwatch': ['VERSION']},
    install_requires=[
        'psutil',
        'pyyaml',
    ],
    extras_require={
        'test': ['pytest'],
    },
    entry_points={
        'console_scripts': [
            'sockwatch=sockwatch:cli_entry',
        ],
    },
)
