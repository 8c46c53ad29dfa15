"""网格参数化工具 - 主程序入口"""
import sys
import logging

# 抑制 trimesh 的调试输出
logging.getLogger('trimesh').setLevel(logging.ERROR)

from meshparam.cli import main


if __name__ == '__main__':
    sys.exit(main())
