__AUTHOR__ = 'xtrabackup-scheduler developers'
__VERSION__ = '1.0.0'
__EMAIL__ = 'xtrabackup-scheduler@users.noreply.github.com'
__LICENSE__ = 'GPLv3'

import re
from pathlib import Path

from setuptools import find_namespace_packages, setup

with open(Path(__file__).parent / 'README.md') as f:
    lines = f.readlines()
    filtered = [
        x for x in lines
        if not re.match(r'^[\[!]{2}', x) and len(x) > 0
    ]
    readme = ''.join(filtered)

with open(Path(__file__).parent / 'requirements.txt') as f:
    requirements = f.read()

package_data = {
    'xtrabackup_scheduler.data': ['*.toml'],
}

setup(
    name='xtrabackup_scheduler',
    python_requires=">=3.10",
    version=__VERSION__,
    license=__LICENSE__,
    author=__AUTHOR__,
    author_email=__EMAIL__,
    maintainer=__AUTHOR__,
    maintainer_email=__EMAIL__,
    description='Scheduled full and incremental MySQL backups to S3 with Percona XtraBackup.',
    long_description=readme.split('## Installation')[0].split('# xtrabackup-scheduler')[-1].strip(),
    long_description_content_type='text/markdown',
    package_dir={'': 'src'},
    packages=find_namespace_packages(where='src'),
    package_data=package_data,
    entry_points={
        'console_scripts': ['xtrabackup-scheduler=xtrabackup_scheduler.run:main'],
    },
    install_requires=requirements,
    extras_require={
        'test': ['pytest', 'moto[s3]>=5'],
    },
    classifiers=[
        'Development Status :: 3 - Alpha',
        'Intended Audience :: System Administrators',
        'Topic :: System :: Archiving :: Backup',
        'License :: OSI Approved :: GNU General Public License v3 (GPLv3)',
        'Programming Language :: Python :: 3',
    ],
)
